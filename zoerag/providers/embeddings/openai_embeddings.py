from __future__ import annotations

import logging
import time

import httpx

from zoerag.core.config import EMBED_DIM, Settings, get_settings
from zoerag.core.errors import EmbeddingError, ProviderConfigError
from zoerag.services.resilience import retry_async
from zoerag.services.telemetry import record_external_call

logger = logging.getLogger(__name__)


class OpenAIEmbeddingProvider:
    def __init__(self, settings: Settings | None = None, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings or get_settings()
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        # Reuse a single client per provider for connection pooling.
        timeout_s = self._settings.ext_call_timeout_ms / 1000.0
        self._client = httpx.AsyncClient(timeout=timeout_s)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def embed(self, text: str) -> list[float]:
        api_key = self._settings.openai_api_key
        if not api_key:
            raise ProviderConfigError("OPENAI_API_KEY is required for OpenAI embeddings")

        client = self._get_client()
        url = f"{self._settings.openai_base_url.rstrip('/')}/embeddings"
        payload = {"model": self._settings.embedding_model, "input": text}
        headers = {"Authorization": f"Bearer {api_key}"}

        async def _call() -> httpx.Response:
            response = await client.post(url, json=payload, headers=headers)
            if response.status_code >= 500:
                # Surface 5xx as an exception so the retry helper can back off.
                response.raise_for_status()
            return response

        def _retryable(exc: Exception) -> bool:
            if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError, TimeoutError)):
                return True
            if isinstance(exc, httpx.HTTPStatusError):
                return exc.response.status_code >= 500
            return False

        start = time.monotonic()
        try:
            response = await retry_async(_call, retryable=_retryable)
        except (httpx.HTTPError, TimeoutError) as exc:
            record_external_call(
                integration="embeddings.openai",
                latency_ms=(time.monotonic() - start) * 1000.0,
                success=False,
            )
            raise EmbeddingError("Embedding request failed.") from exc

        latency_ms = (time.monotonic() - start) * 1000.0
        if response.status_code >= 400:
            record_external_call(integration="embeddings.openai", latency_ms=latency_ms, success=False)
            raise EmbeddingError(f"Embedding provider error: {response.status_code}")

        try:
            vector = response.json()["data"][0]["embedding"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            record_external_call(integration="embeddings.openai", latency_ms=latency_ms, success=False)
            raise EmbeddingError("Embedding response was malformed.") from exc
        if not isinstance(vector, list) or len(vector) != EMBED_DIM:
            # Search must not run with a vector that cannot match the index column.
            record_external_call(integration="embeddings.openai", latency_ms=latency_ms, success=False)
            raise EmbeddingError("Embedding dimension mismatch.")

        record_external_call(integration="embeddings.openai", latency_ms=latency_ms, success=True)
        return [float(value) for value in vector]
