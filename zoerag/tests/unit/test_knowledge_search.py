from __future__ import annotations

import pytest

from zoerag.core.errors import BadRequestError
from zoerag.domain.state import ChatTurn, ResolvedContext
from zoerag.services.knowledge import embed_query, latest_user_message, search_knowledge
from zoerag.services.telemetry import counters_snapshot
from zoerag.tests.utils.fakes import FakeRetriever, RecordingEmbedder, make_match

_CONTEXT = ResolvedContext(tenant_id="t1", audience=("student",), locale="en-GB", short_locale="en")


def test_latest_user_message_skips_trailing_assistant_turns() -> None:
    turns = [
        ChatTurn(role="user", content="first"),
        ChatTurn(role="assistant", content="answer"),
        ChatTurn(role="user", content="second"),
        ChatTurn(role="assistant", content="another"),
    ]
    assert latest_user_message(turns) == "second"


def test_latest_user_message_requires_a_user_turn() -> None:
    with pytest.raises(BadRequestError, match="No user message found"):
        latest_user_message([ChatTurn(role="assistant", content="hi")])


@pytest.mark.asyncio
async def test_embedding_failure_returns_none() -> None:
    assert await embed_query(RecordingEmbedder(fail=True), "hello") is None
    assert counters_snapshot()["embedding_failures_total"] == 1


@pytest.mark.asyncio
async def test_search_passes_resolved_filters() -> None:
    retriever = FakeRetriever([make_match(1)])
    matches = await search_knowledge(retriever, [0.1, 0.2], _CONTEXT)
    assert [match.id for match in matches] == ["kb-1"]
    call = retriever.calls[0]
    assert call["tenant_id"] == "t1"
    assert call["audience"] == ("student",)
    assert call["locale"] == "en"
    assert call["top_k"] == 6
    assert call["min_similarity"] == 0.7


@pytest.mark.asyncio
async def test_search_without_embedding_skips_retriever() -> None:
    retriever = FakeRetriever([make_match(1)])
    assert await search_knowledge(retriever, None, _CONTEXT) == []
    assert retriever.calls == []


@pytest.mark.asyncio
async def test_search_failure_degrades_to_empty() -> None:
    matches = await search_knowledge(FakeRetriever(fail=True), [0.1], _CONTEXT)
    assert matches == []
    assert counters_snapshot()["retrieval_failures_total"] == 1


@pytest.mark.asyncio
async def test_search_drops_empty_content_and_caps_results(monkeypatch) -> None:
    monkeypatch.setenv("RETRIEVAL_TOP_K", "2")
    from zoerag.core.config import get_settings

    get_settings.cache_clear()
    retriever = FakeRetriever(
        [make_match(1, content="  "), make_match(2), make_match(3), make_match(4)]
    )
    matches = await search_knowledge(retriever, [0.1], _CONTEXT)
    assert [match.id for match in matches] == ["kb-2", "kb-3"]
