from __future__ import annotations

import json

import httpx
import pytest

from zoerag.core.config import get_settings
from zoerag.core.errors import (
    ProviderAuthError,
    ProviderConfigError,
    ProviderError,
    ProviderRateLimitError,
    ProviderStreamError,
)
from zoerag.providers.llm.fake import make_chunk
from zoerag.providers.llm.openai_chat import OpenAIChatProvider
from zoerag.services.telemetry import external_latency_by_integration

_MESSAGES = [{"role": "system", "content": "sys"}, {"role": "user", "content": "hi"}]


def _sse_body(*payloads: object) -> bytes:
    lines = [": keep-alive", ""]
    for payload in payloads:
        data = payload if isinstance(payload, str) else json.dumps(payload)
        lines.extend([f"data: {data}", ""])
    return ("\n".join(lines) + "\n").encode("utf-8")


def _provider(handler) -> tuple[OpenAIChatProvider, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def _recording(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(_recording))
    return OpenAIChatProvider(get_settings(), client=client), seen


async def _collect(stream) -> list[dict]:
    return [chunk async for chunk in stream]


@pytest.mark.asyncio
async def test_stream_yields_chunks_until_done() -> None:
    body = _sse_body(make_chunk("Hel"), make_chunk("lo"), "[DONE]", make_chunk("ignored"))
    provider, seen = _provider(
        lambda request: httpx.Response(200, content=body, headers={"Content-Type": "text/event-stream"})
    )

    stream = await provider.open_stream(_MESSAGES, max_tokens=800, temperature=0.2, request_id="r-1")
    chunks = await _collect(stream)

    assert [chunk["choices"][0]["delta"]["content"] for chunk in chunks] == ["Hel", "lo"]
    sent = json.loads(seen[0].content)
    assert seen[0].url.path.endswith("/chat/completions")
    assert seen[0].headers["Authorization"] == "Bearer sk-test"
    assert sent["stream"] is True
    assert sent["model"] == "gpt-4o-mini"
    assert sent["max_tokens"] == 800
    assert sent["messages"] == _MESSAGES
    assert external_latency_by_integration(60)["llm.openai"]["failures"] == 0


@pytest.mark.asyncio
async def test_stream_is_single_use() -> None:
    provider, _ = _provider(lambda request: httpx.Response(200, content=_sse_body("[DONE]")))
    stream = await provider.open_stream(_MESSAGES, max_tokens=10, temperature=0.0)
    await _collect(stream)
    with pytest.raises(RuntimeError):
        await _collect(stream)


@pytest.mark.asyncio
async def test_malformed_chunk_raises_stream_error() -> None:
    body = _sse_body(make_chunk("ok"), "{not json")
    provider, _ = _provider(lambda request: httpx.Response(200, content=body))
    stream = await provider.open_stream(_MESSAGES, max_tokens=10, temperature=0.0)

    received: list[dict] = []
    with pytest.raises(ProviderStreamError):
        async for chunk in stream:
            received.append(chunk)
    assert len(received) == 1


@pytest.mark.asyncio
async def test_in_band_error_raises_provider_error() -> None:
    body = _sse_body({"error": {"message": "overloaded"}})
    provider, _ = _provider(lambda request: httpx.Response(200, content=body))
    stream = await provider.open_stream(_MESSAGES, max_tokens=10, temperature=0.0)
    with pytest.raises(ProviderError):
        await _collect(stream)


@pytest.mark.asyncio
async def test_rate_limit_on_open() -> None:
    provider, _ = _provider(lambda request: httpx.Response(429, json={"error": "slow down"}))
    with pytest.raises(ProviderRateLimitError, match="Rate limit exceeded"):
        await provider.open_stream(_MESSAGES, max_tokens=10, temperature=0.0)
    assert external_latency_by_integration(60)["llm.openai"]["failures"] == 1


@pytest.mark.asyncio
async def test_auth_failure_on_open() -> None:
    provider, _ = _provider(lambda request: httpx.Response(401, json={"error": "bad key"}))
    with pytest.raises(ProviderAuthError):
        await provider.open_stream(_MESSAGES, max_tokens=10, temperature=0.0)


@pytest.mark.asyncio
async def test_server_error_on_open() -> None:
    provider, _ = _provider(lambda request: httpx.Response(503, text="unavailable"))
    with pytest.raises(ProviderError) as excinfo:
        await provider.open_stream(_MESSAGES, max_tokens=10, temperature=0.0)
    assert not isinstance(excinfo.value, ProviderRateLimitError)


@pytest.mark.asyncio
async def test_missing_key_is_a_config_error(monkeypatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    get_settings.cache_clear()
    provider = OpenAIChatProvider(get_settings(), client=httpx.AsyncClient())
    with pytest.raises(ProviderConfigError):
        await provider.open_stream(_MESSAGES, max_tokens=10, temperature=0.0)
