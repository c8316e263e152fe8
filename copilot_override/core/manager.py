"""
服务生命周期：读取配置、创建 app，并在后台线程运行 uvicorn；配置变更后需 stop + start 整体替换。
"""

from __future__ import annotations

import threading
from pathlib import Path

import uvicorn

from copilot_override.config.store import load_settings
from copilot_override.core.errors import ConfigError
from copilot_override.core.gateway import create_app
from copilot_override.core.models import ResponseData
from copilot_override.util.logger import logger

STOP_JOIN_TIMEOUT_SECONDS = 10.0


def split_bind(bind: str) -> tuple[str, int]:
    """``"host:port"`` / ``":port"`` / ``"[::1]:port"`` -> (host, port)."""
    raw = (bind or "").strip()
    host, sep, port_text = raw.rpartition(":")
    if not sep:
        raise ValueError(f"invalid bind address: {bind!r}")
    try:
        port = int(port_text)
    except ValueError as exc:
        raise ValueError(f"invalid bind port: {bind!r}") from exc
    if not 0 < port < 65536:
        raise ValueError(f"invalid bind port: {bind!r}")
    host = host.strip("[]") or "0.0.0.0"
    return host, port


class ServerManager:
    def __init__(self, config_path: str | Path | None = None) -> None:
        self._config_path = config_path
        self._server: uvicorn.Server | None = None
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _prepare(self, host: str | None, port: int | None) -> ResponseData:
        """Load config and build the uvicorn server; *host*/*port* override `bind`."""
        try:
            cfg = load_settings(self._config_path)
        except ConfigError as exc:
            logger.warning("server start aborted: %s", exc)
            return ResponseData.fail(f"failed to read config, create the config file first: {exc}")
        try:
            bind_host, bind_port = split_bind(cfg.bind)
        except ValueError as exc:
            return ResponseData.fail(str(exc))

        config = uvicorn.Config(
            create_app(cfg),
            host=host or bind_host,
            port=port or bind_port,
            log_level=cfg.log_level.lower(),
        )
        self._server = uvicorn.Server(config)
        return ResponseData.success("server prepared")

    def run(self, host: str | None = None, port: int | None = None) -> ResponseData:
        """Serve in the calling thread until uvicorn exits (Ctrl+C)."""
        if self.running:
            return ResponseData.fail("server already running")
        prepared = self._prepare(host, port)
        if not prepared.ok:
            return prepared
        logger.info("server running in foreground host=%s port=%s", self._server.config.host, self._server.config.port)
        try:
            self._server.run()
        finally:
            self._server = None
        return ResponseData.success("server stopped")

    def start(self, host: str | None = None, port: int | None = None) -> ResponseData:
        if self.running:
            return ResponseData.fail("server already running")
        prepared = self._prepare(host, port)
        if not prepared.ok:
            return prepared
        self._thread = threading.Thread(target=self._server.run, name="copilot-override-server", daemon=True)
        self._thread.start()
        logger.info(
            "server thread started host=%s port=%s", self._server.config.host, self._server.config.port
        )
        return ResponseData.success("server started")

    def stop(self) -> ResponseData:
        if self._server is None or self._thread is None:
            return ResponseData.fail("server is not running")
        logger.info("stopping server")
        self._server.should_exit = True
        self._thread.join(timeout=STOP_JOIN_TIMEOUT_SECONDS)
        if self._thread.is_alive():
            logger.warning("server did not stop within %.0fs", STOP_JOIN_TIMEOUT_SECONDS)
            return ResponseData.fail("server stop timed out")
        self._server = None
        self._thread = None
        logger.info("server stopped")
        return ResponseData.success("server stopped")
