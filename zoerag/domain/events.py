from __future__ import annotations

from typing import Any, Literal, TypedDict


class ChunkDelta(TypedDict, total=False):
    role: str
    content: str


class ChunkChoice(TypedDict, total=False):
    index: int
    delta: ChunkDelta
    finish_reason: str | None


class CompletionChunk(TypedDict, total=False):
    # Mirrors the provider's native chat.completion.chunk payload; forwarded as-is.
    id: str
    object: str
    created: int
    model: str
    choices: list[ChunkChoice]


class SourcesEvent(TypedDict):
    type: Literal["sources"]
    sources: list[dict[str, Any]]


class ErrorEvent(TypedDict):
    type: Literal["error"]
    message: str
