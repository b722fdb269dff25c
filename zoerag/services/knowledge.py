from __future__ import annotations

import asyncio
import logging

from zoerag.core.config import Settings, get_settings
from zoerag.core.errors import BadRequestError
from zoerag.domain.state import ChatTurn, KnowledgeMatch, ResolvedContext
from zoerag.providers.embeddings.base import EmbeddingProvider
from zoerag.providers.retrieval.base import KnowledgeRetriever
from zoerag.services.telemetry import increment_counter

logger = logging.getLogger(__name__)


def latest_user_message(messages: tuple[ChatTurn, ...] | list[ChatTurn]) -> str:
    # Search backwards: the newest user turn is the query, whatever follows it.
    for turn in reversed(messages):
        if turn.role == "user":
            return turn.content
    raise BadRequestError("No user message found")


async def embed_query(
    embedder: EmbeddingProvider,
    text: str,
    *,
    request_id: str | None = None,
) -> list[float] | None:
    try:
        vector = await embedder.embed(text)
    except Exception:  # noqa: BLE001 - embeddings are a soft dependency
        increment_counter("embedding_failures_total")
        logger.warning("embedding_failed request_id=%s", request_id, exc_info=True)
        return None
    return vector or None


async def search_knowledge(
    retriever: KnowledgeRetriever,
    embedding: list[float] | None,
    context: ResolvedContext,
    *,
    settings: Settings | None = None,
    request_id: str | None = None,
) -> list[KnowledgeMatch]:
    settings = settings or get_settings()
    if not embedding:
        return []
    try:
        matches = await asyncio.wait_for(
            retriever.search(
                embedding,
                audience=context.audience,
                locale=context.short_locale,
                tenant_id=context.tenant_id,
                top_k=settings.retrieval_top_k,
                min_similarity=settings.retrieval_min_similarity,
            ),
            timeout=settings.ext_call_timeout_ms / 1000.0,
        )
    except Exception:  # noqa: BLE001 - an answer without sources beats no answer
        increment_counter("retrieval_failures_total")
        logger.warning("knowledge_search_failed request_id=%s", request_id, exc_info=True)
        return []
    usable = [match for match in matches if match.content and match.content.strip()]
    return usable[: settings.retrieval_top_k]
