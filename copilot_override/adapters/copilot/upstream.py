"""
上游转发：共享 httpx 客户端、出站请求头、流式回传与错误分类。从 router 拆出，便于单测。
"""

from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack
from dataclasses import dataclass
from typing import AsyncGenerator

import httpx
from fastapi import Request
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from copilot_override.config.settings import Settings, UpstreamTarget
from copilot_override.core.errors import (
    UpstreamRequestError,
    UpstreamTimeoutError,
    UpstreamTransportError,
)
from copilot_override.util.debug_excerpt import excerpt_for_log
from copilot_override.util.logger import get_logger

logger = get_logger("upstream")

DISCONNECT_POLL_SECONDS = 0.1

_upstream_async_client: httpx.AsyncClient | None = None
_upstream_client_lock: asyncio.Lock | None = None


def _upstream_http_limits(cfg: Settings) -> httpx.Limits:
    return httpx.Limits(
        max_connections=max(10, int(cfg.upstream_max_connections)),
        max_keepalive_connections=max(5, int(cfg.upstream_max_keepalive_connections)),
    )


def _upstream_http_timeout(cfg: Settings) -> httpx.Timeout:
    if cfg.timeout <= 0:
        return httpx.Timeout(None)
    timeout = float(cfg.timeout)
    return httpx.Timeout(connect=timeout, read=timeout, write=timeout, pool=timeout)


def _build_client(cfg: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        http2=cfg.upstream_http2,
        proxy=cfg.proxy_url or None,
        timeout=_upstream_http_timeout(cfg),
        limits=_upstream_http_limits(cfg),
    )


async def _get_upstream_async_client(cfg: Settings) -> httpx.AsyncClient:
    global _upstream_async_client, _upstream_client_lock
    if _upstream_async_client is not None:
        return _upstream_async_client
    if _upstream_client_lock is None:
        _upstream_client_lock = asyncio.Lock()
    async with _upstream_client_lock:
        if _upstream_async_client is None:
            _upstream_async_client = _build_client(cfg)
            logger.debug(
                "upstream client created http2=%s proxy=%s timeout=%s",
                cfg.upstream_http2,
                bool(cfg.proxy_url),
                cfg.timeout,
            )
    return _upstream_async_client


async def close_upstream_async_client() -> None:
    global _upstream_async_client
    if _upstream_async_client is not None:
        await _upstream_async_client.aclose()
        _upstream_async_client = None


def build_upstream_headers(target: UpstreamTarget) -> dict[str, str]:
    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {target.api_key}",
    }
    if target.organization:
        headers["OpenAI-Organization"] = target.organization
    if target.project:
        headers["OpenAI-Project"] = target.project
    return headers


@dataclass(slots=True)
class UpstreamExchange:
    """An open upstream response plus the stack that releases it."""

    response: httpx.Response
    exit_stack: AsyncExitStack
    url: str

    @property
    def status_code(self) -> int:
        return self.response.status_code

    @property
    def content_type(self) -> str:
        return self.response.headers.get("content-type", "")

    async def aclose(self) -> None:
        await self.exit_stack.aclose()


async def _wait_for_disconnect(request: Request) -> None:
    while not await request.is_disconnected():
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


async def open_upstream(
    request: Request,
    client: httpx.AsyncClient,
    target: UpstreamTarget,
    body: bytes,
) -> UpstreamExchange:
    """POST *body* to *target* and return once response headers arrive.

    The call is abandoned as soon as the caller disconnects.
    """
    url = target.url
    exit_stack = AsyncExitStack()
    logger.debug("forward start url=%s payload_bytes=%d", url, len(body))

    async def _send() -> httpx.Response:
        return await exit_stack.enter_async_context(
            client.stream("POST", url, headers=build_upstream_headers(target), content=body)
        )

    send_task = asyncio.ensure_future(_send())
    watch_task = asyncio.ensure_future(_wait_for_disconnect(request))
    try:
        done, _ = await asyncio.wait({send_task, watch_task}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        watch_task.cancel()
        if not send_task.done():
            send_task.cancel()

    if send_task not in done:
        await asyncio.gather(send_task, return_exceptions=True)
        await exit_stack.aclose()
        logger.info("forward canceled by caller url=%s", url)
        raise UpstreamTimeoutError("caller disconnected")

    try:
        response = send_task.result()
    except httpx.TimeoutException as exc:
        await exit_stack.aclose()
        logger.warning("forward timeout url=%s error=%s", url, exc)
        raise UpstreamTimeoutError(str(exc) or "upstream_timeout") from exc
    except (httpx.InvalidURL, httpx.UnsupportedProtocol) as exc:
        await exit_stack.aclose()
        logger.error("forward invalid upstream url=%s error=%s", url, exc)
        raise UpstreamRequestError(str(exc)) from exc
    except httpx.HTTPError as exc:
        await exit_stack.aclose()
        detail = (str(exc) or "").strip() or "connection_failed"
        logger.warning("forward http_error url=%s error=%s", url, detail)
        raise UpstreamTransportError(detail) from exc
    except (UnicodeEncodeError, ValueError) as exc:
        # header values must be ASCII
        await exit_stack.aclose()
        logger.error("forward request build failed url=%s error=%s", url, exc)
        raise UpstreamRequestError(str(exc)) from exc

    logger.debug("forward connected url=%s status=%s", url, response.status_code)
    return UpstreamExchange(response=response, exit_stack=exit_stack, url=url)


async def drain_error_body(exchange: UpstreamExchange, label: str) -> bytes:
    """Read, log and release a non-success upstream response."""
    raw = b""
    try:
        raw = await exchange.response.aread()
    except httpx.HTTPError as exc:
        logger.warning("%s failed reading error body url=%s error=%s", label, exchange.url, exc)
    finally:
        await exchange.aclose()
    logger.warning(
        "%s failed status=%s url=%s body=%s",
        label,
        exchange.status_code,
        exchange.url,
        excerpt_for_log(raw),
    )
    return raw


def relay_headers(content_type: str) -> dict[str, str]:
    return {"Content-Type": content_type} if content_type else {}


def relay_response(exchange: UpstreamExchange) -> StreamingResponse:
    """Stream the upstream body to the caller chunk by chunk, as it arrives."""

    async def _iter_body() -> AsyncGenerator[bytes, None]:
        try:
            async for chunk in exchange.response.aiter_bytes():
                if chunk:
                    yield chunk
        except httpx.HTTPError as exc:
            detail = (str(exc) or "").strip() or "connection_failed"
            logger.warning("upstream stream interrupted url=%s error=%s", exchange.url, detail)
        finally:
            await exchange.aclose()

    return StreamingResponse(
        _iter_body(),
        status_code=exchange.status_code,
        headers=relay_headers(exchange.content_type),
        background=BackgroundTask(exchange.aclose),
    )
