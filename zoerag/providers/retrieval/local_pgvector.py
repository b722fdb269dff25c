from __future__ import annotations

import time
from typing import Any, Sequence

from sqlalchemy import or_, select
from sqlalchemy.dialects.postgresql import array
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from zoerag.core.config import EMBED_DIM
from zoerag.core.errors import RetrievalError
from zoerag.domain.models import KnowledgeEntry
from zoerag.domain.state import KnowledgeMatch
from zoerag.services.telemetry import record_external_call


def _as_tuple(value: Any) -> tuple[str, ...] | None:
    if value is None:
        return None
    if isinstance(value, str):
        return (value,)
    if isinstance(value, (list, tuple)):
        return tuple(str(item) for item in value)
    return None


def _audience_value(value: Any) -> str | tuple[str, ...] | None:
    if value is None or isinstance(value, str):
        return value
    return _as_tuple(value)


def build_search_statement(
    embedding: Sequence[float],
    *,
    audience: Sequence[str] | None,
    locale: str | None,
    tenant_id: str | None,
    top_k: int,
    min_similarity: float,
) -> Any:
    # Use cosine distance from pgvector; lower is more similar.
    distance_expr = KnowledgeEntry.embedding.cosine_distance(list(embedding))
    stmt = (
        select(KnowledgeEntry, distance_expr.label("distance"))
        .where(KnowledgeEntry.embedding.is_not(None))
        .where(distance_expr <= 1.0 - min_similarity)
    )
    if tenant_id:
        stmt = stmt.where(or_(KnowledgeEntry.tenant_id == tenant_id, KnowledgeEntry.tenant_id.is_(None)))
    else:
        # Callers without a tenant only see shared knowledge.
        stmt = stmt.where(KnowledgeEntry.tenant_id.is_(None))
    if audience:
        stmt = stmt.where(
            or_(
                KnowledgeEntry.audience.is_(None),
                KnowledgeEntry.audience.has_any(array(list(audience))),
            )
        )
    if locale:
        stmt = stmt.where(
            or_(
                KnowledgeEntry.locale.is_(None),
                KnowledgeEntry.locale == locale,
                KnowledgeEntry.locale.like(f"{locale}-%"),
            )
        )
    # Secondary ordering keeps tie-breaking deterministic.
    return stmt.order_by(distance_expr.asc(), KnowledgeEntry.id.asc()).limit(max(1, int(top_k)))


class PgVectorKnowledgeRetriever:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def search(
        self,
        embedding: Sequence[float],
        *,
        audience: Sequence[str] | None,
        locale: str | None,
        tenant_id: str | None,
        top_k: int,
        min_similarity: float,
    ) -> list[KnowledgeMatch]:
        if len(embedding) != EMBED_DIM:
            # Retrieval must fail fast if the embedding dimension doesn't match the schema.
            raise RetrievalError("query embedding dimension mismatch")

        stmt = build_search_statement(
            embedding,
            audience=audience,
            locale=locale,
            tenant_id=tenant_id,
            top_k=top_k,
            min_similarity=min_similarity,
        )
        start = time.monotonic()
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                rows = result.all()
        except SQLAlchemyError as exc:
            record_external_call(
                integration="retrieval.pgvector",
                latency_ms=(time.monotonic() - start) * 1000.0,
                success=False,
            )
            raise RetrievalError("pgvector query failed") from exc
        record_external_call(
            integration="retrieval.pgvector",
            latency_ms=(time.monotonic() - start) * 1000.0,
            success=True,
        )

        matches: list[KnowledgeMatch] = []
        for entry, distance in rows:
            # Convert cosine distance to similarity and clamp to a sane [0, 1] range.
            similarity = max(0.0, min(1.0, 1.0 - float(distance)))
            matches.append(
                KnowledgeMatch(
                    id=str(entry.id),
                    content=entry.content or "",
                    similarity=similarity,
                    title=entry.title,
                    category=entry.category,
                    tags=_as_tuple(entry.tags),
                    audience=_audience_value(entry.audience),
                    locale=entry.locale,
                    source_url=entry.source_url,
                    source_type=entry.source_type,
                )
            )
        return matches


class NullKnowledgeRetriever:
    # Used when no knowledge index is configured; answers stay ungrounded.
    async def search(
        self,
        embedding: Sequence[float],
        *,
        audience: Sequence[str] | None,
        locale: str | None,
        tenant_id: str | None,
        top_k: int,
        min_similarity: float,
    ) -> list[KnowledgeMatch]:
        return []
