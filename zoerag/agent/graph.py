from __future__ import annotations

import time

from langgraph.graph import END, StateGraph

from zoerag.agent.prompts import build_citations, compose_knowledge_context
from zoerag.core.config import Settings
from zoerag.domain.state import AssistantState
from zoerag.persistence.stores import ConversationStore, ProfileStore
from zoerag.providers.embeddings.base import EmbeddingProvider
from zoerag.providers.retrieval.base import KnowledgeRetriever
from zoerag.services import context as context_service
from zoerag.services import conversations as conversation_service
from zoerag.services import knowledge as knowledge_service


def _timed(state: AssistantState, name: str, started: float) -> dict[str, float]:
    timings = dict(state.get("timings_ms") or {})
    timings[name] = (time.monotonic() - started) * 1000.0
    return timings


def build_graph(
    *,
    embedder: EmbeddingProvider,
    retriever: KnowledgeRetriever,
    profiles: ProfileStore,
    conversations: ConversationStore,
    settings: Settings,
):
    # Every node degrades instead of raising; hard failures are handled before the graph runs.
    graph = StateGraph(AssistantState)

    async def resolve_context(state: AssistantState) -> dict:
        started = time.monotonic()
        profile = await context_service.load_profile(
            profiles,
            state["claims"].subject_id,
            request_id=state.get("request_id"),
        )
        resolved = context_service.resolve_context(
            state["request"],
            profile,
            state.get("accept_language"),
            settings,
        )
        return {
            "profile": profile,
            "context": resolved,
            "timings_ms": _timed(state, "context", started),
        }

    async def embed_query(state: AssistantState) -> dict:
        started = time.monotonic()
        embedding = await knowledge_service.embed_query(
            embedder,
            state["query_text"],
            request_id=state.get("request_id"),
        )
        return {"embedding": embedding, "timings_ms": _timed(state, "embedding", started)}

    async def retrieve_knowledge(state: AssistantState) -> dict:
        started = time.monotonic()
        matches = await knowledge_service.search_knowledge(
            retriever,
            state.get("embedding"),
            state["context"],
            settings=settings,
            request_id=state.get("request_id"),
        )
        return {"matches": matches, "timings_ms": _timed(state, "retrieval", started)}

    async def compose_context(state: AssistantState) -> dict:
        matches = state.get("matches") or []
        return {
            "knowledge_context": compose_knowledge_context(
                matches,
                excerpt_chars=settings.context_excerpt_chars,
            ),
            "citations": build_citations(matches),
        }

    async def record_user_turn(state: AssistantState) -> dict:
        started = time.monotonic()
        conversation_id = await conversation_service.record_user_turn(
            conversations,
            request=state["request"],
            claims=state["claims"],
            context=state["context"],
            content=state["query_text"],
            request_id=state.get("request_id"),
        )
        return {
            "conversation_id": conversation_id,
            "timings_ms": _timed(state, "conversation_log", started),
        }

    graph.add_node("resolve_context", resolve_context)
    graph.add_node("embed_query", embed_query)
    graph.add_node("retrieve_knowledge", retrieve_knowledge)
    graph.add_node("compose_context", compose_context)
    graph.add_node("record_user_turn", record_user_turn)

    graph.set_entry_point("resolve_context")
    graph.add_edge("resolve_context", "embed_query")
    graph.add_edge("embed_query", "retrieve_knowledge")
    graph.add_edge("retrieve_knowledge", "compose_context")
    graph.add_edge("compose_context", "record_user_turn")
    graph.add_edge("record_user_turn", END)

    return graph.compile()


async def run_graph(
    *,
    embedder: EmbeddingProvider,
    retriever: KnowledgeRetriever,
    profiles: ProfileStore,
    conversations: ConversationStore,
    settings: Settings,
    state: AssistantState,
) -> AssistantState:
    graph = build_graph(
        embedder=embedder,
        retriever=retriever,
        profiles=profiles,
        conversations=conversations,
        settings=settings,
    )
    return await graph.ainvoke(state)
