from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, TypedDict


@dataclass(frozen=True)
class AuthClaims:
    subject_id: str
    role: str
    raw_payload: dict[str, Any]


@dataclass(frozen=True)
class CallerProfile:
    tenant_id: str | None = None
    locale: str | None = None
    role: str | None = None


@dataclass(frozen=True)
class ChatTurn:
    role: str
    content: str


@dataclass(frozen=True)
class AssistantRequest:
    messages: tuple[ChatTurn, ...]
    # Normalized once at ingress: lower-cased, deduplicated, or None for "no explicit audience".
    audience: tuple[str, ...] | None
    locale: str | None
    session_id: str
    timezone: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ResolvedContext:
    tenant_id: str | None
    audience: tuple[str, ...] | None
    locale: str | None
    short_locale: str | None


@dataclass(frozen=True)
class KnowledgeMatch:
    id: str
    content: str
    similarity: float
    title: str | None = None
    category: str | None = None
    tags: tuple[str, ...] | None = None
    audience: str | tuple[str, ...] | None = None
    locale: str | None = None
    source_url: str | None = None
    source_type: str | None = None


@dataclass(frozen=True)
class SourceCitation:
    id: str
    title: str | None
    category: str | None
    source_url: str | None
    source_type: str | None
    similarity: float

    @classmethod
    def from_match(cls, match: KnowledgeMatch) -> "SourceCitation":
        return cls(
            id=match.id,
            title=match.title,
            category=match.category,
            source_url=match.source_url,
            source_type=match.source_type,
            similarity=match.similarity,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "category": self.category,
            "source_url": self.source_url,
            "source_type": self.source_type,
            "similarity": self.similarity,
        }


class AssistantState(TypedDict, total=False):
    request_id: str
    request: AssistantRequest
    claims: AuthClaims
    accept_language: Optional[str]
    query_text: str
    profile: Optional[CallerProfile]
    context: ResolvedContext
    embedding: Optional[list[float]]
    matches: list[KnowledgeMatch]
    knowledge_context: str
    citations: list[SourceCitation]
    conversation_id: Optional[str]
    timings_ms: dict[str, float]
