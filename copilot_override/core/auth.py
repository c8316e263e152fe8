"""
路径 token 鉴权：配置了 auth_token 时，路由挂在 /{token}/v1/ 下，token 必须与配置完全一致。
"""

from __future__ import annotations

from typing import Awaitable, Callable

from fastapi import Request
from fastapi.responses import JSONResponse

from copilot_override.core.errors import AuthTokenMismatch
from copilot_override.util.logger import logger
from copilot_override.util.masking import mask_for_log

GATED_PREFIX = "/{token}/v1"
OPEN_PREFIX = "/v1"


def route_prefix(auth_token: str) -> str:
    return GATED_PREFIX if auth_token else OPEN_PREFIX


def require_path_token(auth_token: str) -> Callable[[str], Awaitable[None]]:
    """Build a route dependency comparing the ``{token}`` path segment to *auth_token*."""

    async def _verify_path_token(token: str) -> None:
        if token != auth_token:
            logger.warning("auth token mismatch presented=%s", mask_for_log(token))
            raise AuthTokenMismatch(token)

    return _verify_path_token


async def auth_mismatch_handler(_request: Request, _exc: AuthTokenMismatch) -> JSONResponse:
    return JSONResponse(status_code=401, content={"error": "Unauthorized"})
