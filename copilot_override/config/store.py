"""
配置文件读写：config.json 为主，OVERRIDE_<FIELD> 环境变量覆盖同名字段。
文件路径可由 OVERRIDE_CONFIG_PATH 指定。
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from copilot_override.config.settings import CONFIG_FILE_FIELDS, Settings
from copilot_override.core.errors import ConfigError
from copilot_override.core.models import ResponseData
from copilot_override.util.logger import logger

CONFIG_PATH_ENV = "OVERRIDE_CONFIG_PATH"
DEFAULT_CONFIG_FILE = "config.json"


def config_path(path: str | Path | None = None) -> Path:
    p = Path(path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_FILE)
    return p if p.is_absolute() else Path.cwd() / p


def _read_file_values(path: Path) -> dict[str, Any]:
    if not path.is_file():
        logger.debug("config file not found path=%s, using defaults", path)
        return {}
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"cannot read config file {path}: {exc}") from exc
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a JSON object")
    return {k: v for k, v in data.items() if k in CONFIG_FILE_FIELDS}


def load_settings(path: str | Path | None = None) -> Settings:
    """Build the immutable Settings for one server lifetime."""
    resolved = config_path(path)
    values = _read_file_values(resolved)
    try:
        settings = Settings(**values)
    except ValidationError as exc:
        raise ConfigError(f"invalid config {resolved}: {exc}") from exc
    logger.info("config loaded path=%s fields_from_file=%d", resolved, len(values))
    return settings


def config_file_dict(settings: Settings) -> dict[str, Any]:
    return settings.model_dump(include=set(CONFIG_FILE_FIELDS))


def read_config(path: str | Path | None = None) -> ResponseData:
    try:
        settings = load_settings(path)
    except ConfigError as exc:
        logger.warning("read config failed error=%s", exc)
        return ResponseData.fail(f"failed to read config: {exc}")
    return ResponseData.success("config loaded", data=config_file_dict(settings))


def update_config(raw: str, path: str | Path | None = None) -> ResponseData:
    """Validate *raw* (JSON text) and persist it as the config file."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        return ResponseData.fail(f"config parse error: {exc}")
    if not isinstance(data, dict):
        return ResponseData.fail("config parse error: expected a JSON object")

    values = {k: v for k, v in data.items() if k in CONFIG_FILE_FIELDS}
    try:
        # Validate against field types only; env overrides must not leak into the file.
        validated = Settings.model_validate(values)
    except ValidationError as exc:
        return ResponseData.fail(f"config parse error: {exc}")
    dumped = config_file_dict(validated)
    file_data = {k: dumped[k] for k in CONFIG_FILE_FIELDS}

    target = config_path(path)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(file_data, ensure_ascii=False, indent=4), encoding="utf-8")
    except OSError as exc:
        logger.warning("config write failed path=%s error=%s", target, exc)
        return ResponseData.fail(f"config write error: {exc}")
    logger.info("config updated path=%s", target)
    return ResponseData.success("config updated", data=file_data)
