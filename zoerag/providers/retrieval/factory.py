from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from zoerag.core.config import Settings
from zoerag.core.errors import ProviderConfigError
from zoerag.providers.retrieval.local_pgvector import NullKnowledgeRetriever, PgVectorKnowledgeRetriever


def get_knowledge_retriever(settings: Settings, session_factory: async_sessionmaker[AsyncSession]):
    provider = (settings.knowledge_provider or "pgvector").lower()

    if provider == "none":
        return NullKnowledgeRetriever()
    if provider == "pgvector":
        return PgVectorKnowledgeRetriever(session_factory)

    raise ProviderConfigError(f"Unsupported knowledge provider: {provider}")
