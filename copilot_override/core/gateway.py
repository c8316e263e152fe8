"""FastAPI app factory."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from copilot_override.adapters.copilot.router import build_router, system_router
from copilot_override.adapters.copilot.upstream import close_upstream_async_client
from copilot_override.config.settings import Settings
from copilot_override.core.auth import auth_mismatch_handler
from copilot_override.core.errors import AuthTokenMismatch
from copilot_override.util.logger import logger

APP_TITLE = "copilot-override"


@asynccontextmanager
async def _lifespan(app: FastAPI):
    cfg: Settings = app.state.settings
    logger.info(
        "server starting bind=%s auth=%s chat_base=%s codex_base=%s code_model=%s",
        cfg.bind,
        "gated" if cfg.auth_token else "open",
        cfg.chat_api_base,
        cfg.codex_api_base,
        cfg.code_instruct_model,
    )
    try:
        yield
    finally:
        await close_upstream_async_client()
        logger.info("server stopped bind=%s", cfg.bind)


def create_app(cfg: Settings) -> FastAPI:
    """Build the proxy app for one immutable config snapshot."""
    app = FastAPI(title=APP_TITLE, lifespan=_lifespan)
    app.state.settings = cfg
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Origin", "Content-Type", "Authorization"],
        expose_headers=["Content-Length"],
        allow_credentials=True,
    )
    app.add_exception_handler(AuthTokenMismatch, auth_mismatch_handler)
    app.include_router(system_router)
    app.include_router(build_router(cfg))
    return app
