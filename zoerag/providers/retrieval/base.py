from __future__ import annotations

from typing import Protocol, Sequence

from zoerag.domain.state import KnowledgeMatch


class KnowledgeRetriever(Protocol):
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
        ...
