import asyncio

import httpx
import pytest
from starlette.requests import Request

from copilot_override.adapters.copilot import upstream
from copilot_override.adapters.copilot.upstream import (
    build_upstream_headers,
    drain_error_body,
    open_upstream,
    relay_response,
)
from copilot_override.config.settings import Settings, UpstreamTarget
from copilot_override.core.errors import (
    UpstreamRequestError,
    UpstreamTimeoutError,
    UpstreamTransportError,
)


def _build_request(*, disconnected: bool = False) -> Request:
    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "POST",
        "scheme": "http",
        "path": "/v1/chat/completions",
        "raw_path": b"/v1/chat/completions",
        "query_string": b"",
        "headers": [(b"content-type", b"application/json")],
        "client": ("127.0.0.1", 54321),
        "server": ("testserver", 80),
    }

    async def receive() -> dict:
        if disconnected:
            return {"type": "http.disconnect"}
        return {"type": "http.request", "body": b"", "more_body": False}

    return Request(scope, receive)


def _target(**overrides) -> UpstreamTarget:
    values = {
        "base": "https://upstream.example.com/v1",
        "api_key": "sk-test",
        "organization": "",
        "project": "",
        "path": "/chat/completions",
    }
    values.update(overrides)
    return UpstreamTarget(**values)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def _collect(response) -> list[bytes]:
    chunks: list[bytes] = []
    async for chunk in response.body_iterator:
        chunks.append(chunk)
    return chunks


def test_target_url_joins_base_and_path():
    assert _target(base="https://upstream.example.com/v1/").url == "https://upstream.example.com/v1/chat/completions"


def test_settings_targets_use_fixed_suffixes():
    cfg = Settings(chat_api_base="https://chat.example.com/v1", codex_api_base="https://code.example.com")
    assert cfg.chat_target().url == "https://chat.example.com/v1/chat/completions"
    assert cfg.codex_target().url == "https://code.example.com/completions"


def test_headers_without_org_or_project():
    headers = build_upstream_headers(_target())
    assert headers == {"Content-Type": "application/json", "Authorization": "Bearer sk-test"}


def test_headers_include_org_and_project_when_configured():
    headers = build_upstream_headers(_target(organization="org-1", project="proj-9"))
    assert headers["OpenAI-Organization"] == "org-1"
    assert headers["OpenAI-Project"] == "proj-9"


@pytest.mark.asyncio
async def test_open_upstream_sends_post_with_body_and_headers():
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["method"] = request.method
        captured["url"] = str(request.url)
        captured["auth"] = request.headers.get("authorization")
        captured["content"] = request.content
        return httpx.Response(200, json={"ok": True})

    async with _client(handler) as client:
        exchange = await open_upstream(_build_request(), client, _target(), b'{"model":"x"}')
        try:
            assert exchange.status_code == 200
        finally:
            await exchange.aclose()

    assert captured["method"] == "POST"
    assert captured["url"] == "https://upstream.example.com/v1/chat/completions"
    assert captured["auth"] == "Bearer sk-test"
    assert captured["content"] == b'{"model":"x"}'


@pytest.mark.asyncio
async def test_open_upstream_maps_timeout():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    async with _client(handler) as client:
        with pytest.raises(UpstreamTimeoutError):
            await open_upstream(_build_request(), client, _target(), b"{}")


@pytest.mark.asyncio
async def test_open_upstream_maps_connection_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(UpstreamTransportError):
            await open_upstream(_build_request(), client, _target(), b"{}")


@pytest.mark.asyncio
async def test_open_upstream_rejects_base_without_scheme():
    async with httpx.AsyncClient() as client:
        with pytest.raises(UpstreamRequestError):
            await open_upstream(_build_request(), client, _target(base=""), b"{}")


@pytest.mark.asyncio
async def test_open_upstream_rejects_non_ascii_header_value():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("request must not be sent")

    async with _client(handler) as client:
        with pytest.raises(UpstreamRequestError):
            await open_upstream(_build_request(), client, _target(api_key="sk-ключ"), b"{}")
        with pytest.raises(UpstreamRequestError):
            await open_upstream(_build_request(), client, _target(organization="組織"), b"{}")


@pytest.mark.asyncio
async def test_open_upstream_reports_caller_disconnect_as_timeout():
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(30)
        return httpx.Response(200)

    async with _client(handler) as client:
        with pytest.raises(UpstreamTimeoutError):
            await open_upstream(_build_request(disconnected=True), client, _target(), b"{}")


@pytest.mark.asyncio
async def test_relay_streams_chunks_as_they_arrive():
    async def events():
        yield b"data: {\"id\":1}\n\n"
        yield b"data: {\"id\":2}\n\n"
        yield b"data: [DONE]\n\n"

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=events())

    async with _client(handler) as client:
        exchange = await open_upstream(_build_request(), client, _target(), b"{}")
        response = relay_response(exchange)
        chunks = await _collect(response)

    assert response.status_code == 200
    assert response.headers["content-type"] == "text/event-stream"
    assert chunks == [b"data: {\"id\":1}\n\n", b"data: {\"id\":2}\n\n", b"data: [DONE]\n\n"]
    assert exchange.response.is_closed


@pytest.mark.asyncio
async def test_relay_omits_content_type_when_upstream_has_none():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"plain")

    async with _client(handler) as client:
        exchange = await open_upstream(_build_request(), client, _target(), b"{}")
        response = relay_response(exchange)
        chunks = await _collect(response)

    assert "content-type" not in response.headers
    assert b"".join(chunks) == b"plain"


@pytest.mark.asyncio
async def test_drain_error_body_reads_and_releases():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"error": {"message": "rate limited"}})

    async with _client(handler) as client:
        exchange = await open_upstream(_build_request(), client, _target(), b"{}")
        raw = await drain_error_body(exchange, "chat completions")

    assert b"rate limited" in raw
    assert exchange.response.is_closed


@pytest.mark.asyncio
async def test_shared_client_is_reused_and_closed():
    cfg = Settings(upstream_http2=False, proxy_url="", timeout=5)
    await upstream.close_upstream_async_client()
    first = await upstream._get_upstream_async_client(cfg)
    second = await upstream._get_upstream_async_client(cfg)
    assert first is second
    await upstream.close_upstream_async_client()
    assert upstream._upstream_async_client is None
    assert first.is_closed


def test_zero_timeout_means_no_timeout():
    timeout = upstream._upstream_http_timeout(Settings(timeout=0))
    assert timeout.read is None
    assert timeout.connect is None


def test_upstream_logs_under_project_logger():
    from copilot_override.util.logger import logger as project_logger

    assert upstream.logger.name == "copilot_override.upstream"
    assert upstream.logger.parent is project_logger
