"""
copilot-override command line.

    serve         Start the proxy in the foreground
    init          Write a default config file if none exists
    show-config   Print the effective config (file + OVERRIDE_* env), secrets masked
"""

from __future__ import annotations

import argparse
import json
import sys

from copilot_override.config.store import config_file_dict, load_settings
from copilot_override.core.errors import ConfigError
from copilot_override.core.manager import ServerManager
from copilot_override.init_config import ensure_config_file
from copilot_override.util.logger import logger
from copilot_override.util.masking import mask_config


def cmd_serve(args: argparse.Namespace) -> int:
    result = ServerManager(args.config).run(host=args.host, port=args.port)
    if not result.ok:
        logger.error("serve aborted: %s", result.msg)
        return 1
    return 0


def cmd_init(args: argparse.Namespace) -> int:
    created = ensure_config_file(args.config)
    print("config created" if created else "config already exists, left untouched")
    return 0


def cmd_show_config(args: argparse.Namespace) -> int:
    try:
        cfg = load_settings(args.config)
    except ConfigError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    print(json.dumps(mask_config(config_file_dict(cfg)), ensure_ascii=False, indent=4))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="copilot-override", description=__doc__.split("\n\n")[0].strip())
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="start the proxy server")
    serve.add_argument("--config", help="config file path (default: $OVERRIDE_CONFIG_PATH or ./config.json)")
    serve.add_argument("--host", help="override the host part of `bind`")
    serve.add_argument("--port", type=int, help="override the port part of `bind`")
    serve.set_defaults(func=cmd_serve)

    init = sub.add_parser("init", help="write a default config file")
    init.add_argument("--config", help="config file path")
    init.set_defaults(func=cmd_init)

    show = sub.add_parser("show-config", help="print the effective config")
    show.add_argument("--config", help="config file path")
    show.set_defaults(func=cmd_show_config)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
