from __future__ import annotations

import json
import logging
import time
from typing import Any, AsyncIterator

import httpx

from zoerag.core.config import Settings, get_settings
from zoerag.core.errors import (
    ProviderAuthError,
    ProviderConfigError,
    ProviderError,
    ProviderRateLimitError,
    ProviderStreamError,
    ProviderTimeoutError,
)
from zoerag.services.telemetry import record_external_call

logger = logging.getLogger(__name__)

_DATA_PREFIX = "data:"
_DONE_SENTINEL = "[DONE]"


class OpenAIChatStream:
    def __init__(
        self,
        response: httpx.Response,
        *,
        max_duration_s: float,
        request_id: str | None = None,
    ) -> None:
        self._response = response
        self._max_duration_s = max_duration_s
        self._request_id = request_id
        self._started = False
        self._closed = False

    async def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        if self._started:
            raise RuntimeError("chat completion stream can only be consumed once")
        self._started = True
        deadline = time.monotonic() + self._max_duration_s
        try:
            async for line in self._response.aiter_lines():
                if time.monotonic() > deadline:
                    raise ProviderTimeoutError("Completion stream exceeded its time budget.")
                line = line.strip()
                # Blank lines separate events; lines starting with ":" are keep-alive comments.
                if not line or not line.startswith(_DATA_PREFIX):
                    continue
                data = line[len(_DATA_PREFIX):].strip()
                if data == _DONE_SENTINEL:
                    break
                try:
                    chunk = json.loads(data)
                except ValueError as exc:
                    raise ProviderStreamError("Completion stream sent a malformed chunk.") from exc
                if not isinstance(chunk, dict):
                    raise ProviderStreamError("Completion stream sent a non-object chunk.")
                if chunk.get("error"):
                    # Providers may report failures in-band after the 200 status was sent.
                    logger.warning(
                        "chat_stream_provider_error request_id=%s error=%s",
                        self._request_id,
                        chunk.get("error"),
                    )
                    raise ProviderError("Completion provider reported an error mid-stream.")
                yield chunk
        except httpx.TimeoutException as exc:
            raise ProviderTimeoutError("Completion stream stalled.") from exc
        except httpx.HTTPError as exc:
            raise ProviderError("Completion stream transport failed.") from exc
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()


class OpenAIChatProvider:
    def __init__(self, settings: Settings | None = None, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings or get_settings()
        self._client = client

    @property
    def model(self) -> str:
        return self._settings.chat_model

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        # Read timeout bounds the gap between chunks, not the whole stream.
        timeout = httpx.Timeout(
            10.0,
            connect=self._settings.llm_connect_timeout_s,
            read=self._settings.llm_stream_read_timeout_s,
        )
        self._client = httpx.AsyncClient(timeout=timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def open_stream(
        self,
        messages: list[dict[str, str]],
        *,
        max_tokens: int,
        temperature: float,
        request_id: str | None = None,
    ) -> OpenAIChatStream:
        api_key = self._settings.openai_api_key
        if not api_key:
            raise ProviderConfigError("OPENAI_API_KEY is required for OpenAI chat completions")

        client = self._get_client()
        payload = {
            "model": self._settings.chat_model,
            "messages": messages,
            "stream": True,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        request = client.build_request(
            "POST",
            f"{self._settings.openai_base_url.rstrip('/')}/chat/completions",
            json=payload,
            headers={"Authorization": f"Bearer {api_key}"},
        )

        logger.info("chat_stream_start request_id=%s model=%s", request_id, self._settings.chat_model)
        start = time.monotonic()
        try:
            response = await client.send(request, stream=True)
        except httpx.TimeoutException as exc:
            record_external_call(
                integration="llm.openai",
                latency_ms=(time.monotonic() - start) * 1000.0,
                success=False,
            )
            raise ProviderTimeoutError("Completion provider did not respond in time.") from exc
        except httpx.HTTPError as exc:
            record_external_call(
                integration="llm.openai",
                latency_ms=(time.monotonic() - start) * 1000.0,
                success=False,
            )
            raise ProviderError("Completion provider request failed.") from exc

        latency_ms = (time.monotonic() - start) * 1000.0
        if response.status_code >= 400:
            body = await response.aread()
            await response.aclose()
            record_external_call(integration="llm.openai", latency_ms=latency_ms, success=False)
            logger.error(
                "chat_stream_rejected request_id=%s status=%s body=%s",
                request_id,
                response.status_code,
                body[:500].decode("utf-8", errors="replace"),
            )
            if response.status_code == 429:
                raise ProviderRateLimitError("Rate limit exceeded. Please try again later.")
            if response.status_code in {401, 403}:
                raise ProviderAuthError("Completion provider auth error: check OPENAI_API_KEY.")
            raise ProviderError(f"Completion provider error: {response.status_code}")

        record_external_call(integration="llm.openai", latency_ms=latency_ms, success=True)
        return OpenAIChatStream(
            response,
            max_duration_s=self._settings.llm_stream_max_duration_s,
            request_id=request_id,
        )
