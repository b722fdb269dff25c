from __future__ import annotations

import json

import httpx
import pytest

from zoerag.core.config import EMBED_DIM, get_settings
from zoerag.core.errors import EmbeddingError
from zoerag.providers.embeddings.openai_embeddings import OpenAIEmbeddingProvider
from zoerag.services.telemetry import counters_snapshot


def _provider(handler) -> OpenAIEmbeddingProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OpenAIEmbeddingProvider(get_settings(), client=client)


@pytest.mark.asyncio
async def test_embed_returns_vector() -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"data": [{"embedding": [0.5] * EMBED_DIM}]})

    vector = await _provider(handler).embed("study in Canada")
    assert len(vector) == EMBED_DIM
    assert seen == [{"model": "text-embedding-3-small", "input": "study in Canada"}]


@pytest.mark.asyncio
async def test_server_errors_are_retried(monkeypatch) -> None:
    monkeypatch.setenv("EXT_RETRY_BACKOFF_MS", "0")
    get_settings.cache_clear()
    responses = iter(
        [
            httpx.Response(502, text="bad gateway"),
            httpx.Response(200, json={"data": [{"embedding": [0.1] * EMBED_DIM}]}),
        ]
    )

    vector = await _provider(lambda request: next(responses)).embed("hello")
    assert len(vector) == EMBED_DIM
    assert counters_snapshot()["external_retries_total"] == 1


@pytest.mark.asyncio
async def test_client_errors_are_not_retried() -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(400, json={"error": "bad input"})

    with pytest.raises(EmbeddingError):
        await _provider(handler).embed("hello")
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_dimension_mismatch_is_rejected() -> None:
    provider = _provider(lambda request: httpx.Response(200, json={"data": [{"embedding": [0.1, 0.2]}]}))
    with pytest.raises(EmbeddingError, match="dimension"):
        await provider.embed("hello")


@pytest.mark.asyncio
async def test_malformed_response_is_rejected() -> None:
    provider = _provider(lambda request: httpx.Response(200, json={"unexpected": True}))
    with pytest.raises(EmbeddingError, match="malformed"):
        await provider.embed("hello")
