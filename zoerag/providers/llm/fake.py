from __future__ import annotations

import time
from typing import Any, AsyncIterator


def make_chunk(
    content: str | None,
    *,
    model: str = "fake",
    finish_reason: str | None = None,
    chunk_id: str = "chatcmpl-fake",
) -> dict[str, Any]:
    # Same shape as a native chat.completion.chunk so relays treat fakes like real chunks.
    delta: dict[str, Any] = {} if content is None else {"content": content}
    return {
        "id": chunk_id,
        "object": "chat.completion.chunk",
        "created": int(time.time()),
        "model": model,
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }


class FakeChatStream:
    def __init__(self, chunks: list[dict[str, Any]]) -> None:
        self._chunks = chunks
        self._started = False
        self.closed = False

    async def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        if self._started:
            raise RuntimeError("chat completion stream can only be consumed once")
        self._started = True
        try:
            for chunk in self._chunks:
                yield chunk
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        self.closed = True


class FakeChatProvider:
    def __init__(self, response: str = "This is a fake response.") -> None:
        # Deterministic response keeps tests stable without external calls.
        self._response = response
        self.calls: list[dict[str, Any]] = []

    @property
    def model(self) -> str:
        return "fake"

    async def open_stream(
        self,
        messages: list[dict[str, str]],
        *,
        max_tokens: int,
        temperature: float,
        request_id: str | None = None,
    ) -> FakeChatStream:
        self.calls.append(
            {"messages": messages, "max_tokens": max_tokens, "temperature": temperature}
        )
        chunks = [make_chunk(None, finish_reason=None)]
        chunks[0]["choices"][0]["delta"] = {"role": "assistant", "content": ""}
        # Yield word tokens so streaming tests see more than one frame.
        chunks.extend(make_chunk(f"{token} ") for token in self._response.split())
        chunks.append(make_chunk(None, finish_reason="stop"))
        return FakeChatStream(chunks)
