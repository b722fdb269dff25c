from __future__ import annotations

from typing import AsyncIterator, Protocol

from zoerag.domain.events import CompletionChunk


class ChatCompletionStream(Protocol):
    # Lazy, finite, single-pass sequence of provider chunks.
    def __aiter__(self) -> AsyncIterator[CompletionChunk]:
        ...

    async def aclose(self) -> None:
        ...


class ChatCompletionProvider(Protocol):
    @property
    def model(self) -> str:
        ...

    async def open_stream(
        self,
        messages: list[dict[str, str]],
        *,
        max_tokens: int,
        temperature: float,
        request_id: str | None = None,
    ) -> ChatCompletionStream:
        ...
