from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Request

from zoerag.core.config import Settings, get_settings
from zoerag.persistence.stores import ConversationStore, ProfileStore, SqlConversationStore, SqlProfileStore
from zoerag.providers.embeddings.base import EmbeddingProvider
from zoerag.providers.embeddings.factory import get_embedding_provider
from zoerag.providers.llm.base import ChatCompletionProvider
from zoerag.providers.llm.factory import get_llm_provider
from zoerag.providers.retrieval.base import KnowledgeRetriever
from zoerag.providers.retrieval.factory import get_knowledge_retriever

logger = logging.getLogger(__name__)


@dataclass
class AssistantClients:
    # Constructed once per process and shared by every request.
    embedder: EmbeddingProvider
    retriever: KnowledgeRetriever
    llm: ChatCompletionProvider
    profiles: ProfileStore
    conversations: ConversationStore

    async def aclose(self) -> None:
        for client in (self.embedder, self.llm):
            close = getattr(client, "aclose", None)
            if close is not None:
                await close()


def build_clients(settings: Settings | None = None) -> AssistantClients:
    # Fail fast: factories raise ProviderConfigError on missing keys or unknown providers.
    settings = settings or get_settings()
    from zoerag.persistence.db import SessionLocal

    clients = AssistantClients(
        embedder=get_embedding_provider(settings),
        retriever=get_knowledge_retriever(settings, SessionLocal),
        llm=get_llm_provider(settings),
        profiles=SqlProfileStore(SessionLocal),
        conversations=SqlConversationStore(SessionLocal),
    )
    logger.info(
        "assistant_clients_ready llm=%s embeddings=%s knowledge=%s",
        settings.llm_provider,
        settings.embedding_provider,
        settings.knowledge_provider,
    )
    return clients


def get_clients(request: Request) -> AssistantClients:
    clients = getattr(request.app.state, "clients", None)
    if clients is None:
        # Lifespan did not run (e.g. in-process transports); build on first use instead.
        clients = build_clients()
        request.app.state.clients = clients
    return clients
