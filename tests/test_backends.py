"""Tests for the local and remote classifier backends."""

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from query_router.backends import LocalSLMProvider, RemoteChatProvider
from query_router.errors import BackendUnavailableError

ENDPOINT = "http://slm.local/v1/chat/completions"


def _completion(content):
    return {
        "id": "cmpl-1",
        "model": "granite-3.1-3b",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content},
                     "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 20, "completion_tokens": 5, "total_tokens": 25},
    }


def _local(handler, **kwargs):
    return LocalSLMProvider(ENDPOINT, api_key="secret", transport=httpx.MockTransport(handler), **kwargs)


# ---------------------------------------------------------------------------
# LocalSLMProvider
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_local_text_completion_sends_openai_payload():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json=_completion('{"category":"greeting"}'))

    provider = _local(handler)
    text = await provider.text_completion("sys", "user", max_tokens=150, temperature=0)
    await provider.aclose()

    assert text == '{"category":"greeting"}'
    assert seen["auth"] == "Bearer secret"
    assert seen["body"]["messages"][0] == {"role": "system", "content": "sys"}
    assert seen["body"]["max_tokens"] == 150
    assert seen["body"]["temperature"] == 0
    assert seen["body"]["stream"] is False


@pytest.mark.asyncio
async def test_local_http_error_raises_unavailable():
    provider = _local(lambda request: httpx.Response(503, text="loading model"))
    with pytest.raises(BackendUnavailableError):
        await provider.chat([{"role": "user", "content": "hi"}])
    await provider.aclose()


@pytest.mark.asyncio
async def test_local_connection_error_raises_unavailable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    provider = _local(handler)
    with pytest.raises(BackendUnavailableError):
        await provider.chat([{"role": "user", "content": "hi"}])
    await provider.aclose()


@pytest.mark.asyncio
async def test_local_health_check_sets_availability():
    provider = _local(lambda request: httpx.Response(200, json=_completion("pong")))
    assert provider.available is False
    assert await provider.check_health() is True
    assert provider.available is True
    await provider.aclose()


@pytest.mark.asyncio
async def test_local_health_check_is_cached():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=_completion("pong"))

    provider = _local(handler, health_interval_s=60)
    await provider.check_health()
    await provider.check_health()
    assert len(calls) == 1
    await provider.aclose()


@pytest.mark.asyncio
async def test_local_failed_health_check():
    provider = _local(lambda request: httpx.Response(401))
    assert await provider.check_health() is False
    assert provider.available is False
    await provider.aclose()


@pytest.mark.asyncio
async def test_disabled_local_never_calls_out():
    calls = []
    provider = _local(lambda request: calls.append(request) or httpx.Response(200), enabled=False)
    assert await provider.check_health() is False
    with pytest.raises(BackendUnavailableError):
        await provider.chat([])
    assert calls == []
    await provider.aclose()


# ---------------------------------------------------------------------------
# RemoteChatProvider
# ---------------------------------------------------------------------------


def test_remote_without_credentials_is_unavailable():
    assert RemoteChatProvider(api_key=None).available is False


def test_remote_azure_without_endpoint_is_unavailable():
    assert RemoteChatProvider(api_key="k", api_version="2025-01-01-preview").available is False


def test_remote_with_azure_credentials_is_available():
    provider = RemoteChatProvider(
        api_key="k", api_base="https://example.openai.azure.com", api_version="2025-01-01-preview",
    )
    assert provider.available is True


@pytest.mark.asyncio
async def test_remote_unavailable_chat_raises():
    with pytest.raises(BackendUnavailableError):
        await RemoteChatProvider(api_key=None).chat([])


@pytest.mark.asyncio
async def test_remote_chat_completion_uses_client():
    completion = SimpleNamespace(
        model="gpt-4o-mini",
        choices=[SimpleNamespace(message=SimpleNamespace(content='  {"category":"email"} '),
                                 finish_reason="stop")],
        usage=SimpleNamespace(prompt_tokens=30, completion_tokens=8),
    )
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=completion)
    provider = RemoteChatProvider(api_key=None, client=client)

    text = await provider.chat_completion("gpt-4o-mini", [{"role": "user", "content": "x"}])

    assert text == '{"category":"email"}'
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["temperature"] == 0.0
    assert kwargs["max_tokens"] == 150


@pytest.mark.asyncio
async def test_local_request_error_keeps_health_status():
    attempts = []

    def handler(request):
        body = json.loads(request.content)
        if "model" in body:
            attempts.append(body)
            if len(attempts) == 1:
                raise httpx.ConnectError("reset", request=request)
        return httpx.Response(200, json=_completion("{}"))

    provider = _local(handler)
    await provider.check_health()
    with pytest.raises(BackendUnavailableError):
        await provider.chat([{"role": "user", "content": "hi"}])
    assert provider.available is True
    assert (await provider.chat([{"role": "user", "content": "hi"}])).content == "{}"
    await provider.aclose()


@pytest.mark.asyncio
async def test_periodic_health_checks_bring_local_back():
    pings = []

    def handler(request):
        pings.append(request)
        if len(pings) == 1:
            return httpx.Response(503)
        return httpx.Response(200, json=_completion("pong"))

    provider = _local(handler, health_interval_s=0.01)
    assert await provider.check_health() is False
    provider.start_health_checks()
    for _ in range(100):
        if provider.available:
            break
        await asyncio.sleep(0.01)
    await provider.aclose()
    assert provider.available is True
    assert provider._health_task is None


@pytest.mark.asyncio
async def test_disabled_local_skips_health_checks():
    provider = _local(lambda request: httpx.Response(200), enabled=False)
    provider.start_health_checks()
    assert provider._health_task is None
    await provider.aclose()
