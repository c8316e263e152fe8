"""Copilot-compatible routes: chat completions and copilot-codex code completions."""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response
from starlette.requests import ClientDisconnect

from copilot_override.adapters.copilot.catalog import catalog_payload
from copilot_override.adapters.copilot.transform import encode_body, transform_chat, transform_code
from copilot_override.adapters.copilot.upstream import (
    _get_upstream_async_client,
    drain_error_body,
    open_upstream,
    relay_headers,
    relay_response,
)
from copilot_override.config.settings import Settings
from copilot_override.core.auth import require_path_token, route_prefix
from copilot_override.core.errors import UpstreamError, UpstreamTimeoutError
from copilot_override.core.models import Pong
from copilot_override.util.debug_excerpt import debug_log_body
from copilot_override.util.logger import get_logger

logger = get_logger("copilot")

# code 补全固定延迟，过滤编辑器高频触发的请求
CODE_ADMISSION_DELAY_SECONDS = 0.2
CODEX_ABORT_BODY = "data: [DONE]\n"

CHAT_PATHS = ("/chat/completions", "/v1/chat/completions")
CODE_PATHS = ("/engines/copilot-codex/completions", "/v1/engines/copilot-codex/completions")


def abort_codex(status_code: int) -> Response:
    """Stream-shaped failure reply; copilot-codex clients only understand event streams."""
    return Response(
        content=CODEX_ABORT_BODY,
        status_code=status_code,
        headers={"Content-Type": "text/event-stream"},
    )


async def _read_json_body(request: Request) -> dict[str, Any] | None:
    raw = await request.body()
    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if not isinstance(body, dict):
        return None
    return body


async def handle_chat(request: Request, cfg: Settings) -> Response:
    try:
        body = await _read_json_body(request)
    except ClientDisconnect:
        return Response(status_code=408)
    if body is None:
        logger.warning("chat completions malformed body path=%s", request.url.path)
        return Response(status_code=400)

    inbound_model = body.get("model")
    try:
        transform_chat(body, cfg)
        payload = encode_body(body)
    except Exception:
        logger.exception("chat completions rewrite failed path=%s", request.url.path)
        return Response(status_code=500)
    logger.info("chat completions model=%s -> %s", inbound_model, body["model"])
    debug_log_body("chat_outbound", body)

    client = await _get_upstream_async_client(cfg)
    try:
        exchange = await open_upstream(request, client, cfg.chat_target(), payload)
    except UpstreamTimeoutError:
        return Response(status_code=408)
    except UpstreamError as exc:
        logger.error("request conversation failed: %s", exc)
        return Response(status_code=500)
    except Exception:
        logger.exception("request conversation failed")
        return Response(status_code=500)

    if exchange.status_code != 200:
        raw = await drain_error_body(exchange, "chat completions")
        return Response(
            content=raw,
            status_code=exchange.status_code,
            headers=relay_headers(exchange.content_type),
        )
    return relay_response(exchange)


async def handle_code(request: Request, cfg: Settings) -> Response:
    await asyncio.sleep(CODE_ADMISSION_DELAY_SECONDS)
    try:
        body = await _read_json_body(request)
    except ClientDisconnect:
        return abort_codex(408)
    if await request.is_disconnected():
        return abort_codex(408)
    if body is None:
        logger.warning("code completions malformed body path=%s", request.url.path)
        return abort_codex(400)

    try:
        transform_code(body, cfg)
        payload = encode_body(body)
    except Exception:
        logger.exception("code completions rewrite failed path=%s", request.url.path)
        return abort_codex(500)
    debug_log_body("code_outbound", body)

    client = await _get_upstream_async_client(cfg)
    try:
        exchange = await open_upstream(request, client, cfg.codex_target(), payload)
    except UpstreamTimeoutError:
        return abort_codex(408)
    except UpstreamError as exc:
        logger.error("request completions failed: %s", exc)
        return abort_codex(500)
    except Exception:
        logger.exception("request completions failed")
        return abort_codex(500)

    if exchange.status_code != 200:
        await drain_error_body(exchange, "code completions")
        return abort_codex(exchange.status_code)
    return relay_response(exchange)


def build_router(cfg: Settings) -> APIRouter:
    """Completion routes for one config; gated under ``/{token}/v1`` when a token is set."""
    dependencies = [Depends(require_path_token(cfg.auth_token))] if cfg.auth_token else []
    router = APIRouter(prefix=route_prefix(cfg.auth_token), dependencies=dependencies)

    async def chat_completions(request: Request) -> Response:
        return await handle_chat(request, cfg)

    async def code_completions(request: Request) -> Response:
        return await handle_code(request, cfg)

    for path in CHAT_PATHS:
        router.add_api_route(path, chat_completions, methods=["POST"])
    for path in CODE_PATHS:
        router.add_api_route(path, code_completions, methods=["POST"])
    return router


system_router = APIRouter()


@system_router.get("/_ping")
async def ping() -> JSONResponse:
    return JSONResponse(content=Pong(now=int(time.time())).model_dump())


@system_router.get("/models")
@system_router.get("/v1/models")
async def models() -> JSONResponse:
    return JSONResponse(content=catalog_payload())
