"""
首次启动时生成默认 config.json：文件不存在或为空时写入默认值，已有文件不覆盖。
可单独执行：python -m copilot_override.init_config
"""

from __future__ import annotations

import json
from pathlib import Path

from copilot_override.config.settings import CONFIG_FILE_FIELDS, Settings
from copilot_override.config.store import config_path
from copilot_override.util.logger import logger


def default_config() -> dict:
    defaults = Settings.model_construct()
    return {name: getattr(defaults, name) for name in CONFIG_FILE_FIELDS}


def ensure_config_file(path: str | Path | None = None) -> bool:
    """Write the default config when missing or empty. Returns True when a file was written."""
    target = config_path(path)
    if target.exists() and target.stat().st_size > 0:
        logger.debug("init_config: %s already present", target)
        return False
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(default_config(), ensure_ascii=False, indent=4), encoding="utf-8")
    logger.info("init_config: created %s from defaults", target)
    return True


def main() -> None:
    ensure_config_file()


if __name__ == "__main__":
    main()
