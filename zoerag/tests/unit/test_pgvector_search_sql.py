from __future__ import annotations

import re

import pytest
from sqlalchemy.dialects import postgresql

from zoerag.core.config import EMBED_DIM
from zoerag.core.errors import RetrievalError
from zoerag.providers.retrieval.local_pgvector import PgVectorKnowledgeRetriever, build_search_statement


def _compiled_sql(**overrides) -> str:
    values = {
        "audience": ("student",),
        "locale": "en",
        "tenant_id": "t1",
        "top_k": 6,
        "min_similarity": 0.7,
    }
    values.update(overrides)
    stmt = build_search_statement([0.0] * EMBED_DIM, **values)
    return str(stmt.compile(dialect=postgresql.dialect())).lower()


def test_search_orders_by_cosine_distance_with_threshold() -> None:
    sql = _compiled_sql()
    assert "<=>" in sql
    assert re.search(r"order by \(?knowledge_base\.embedding <=> ", sql)
    assert "asc, knowledge_base.id asc" in sql
    assert "limit" in sql


def test_tenant_filter_includes_shared_entries() -> None:
    sql = _compiled_sql()
    assert "knowledge_base.tenant_id = " in sql
    assert "knowledge_base.tenant_id is null" in sql


def test_caller_without_tenant_sees_only_shared_entries() -> None:
    sql = _compiled_sql(tenant_id=None)
    assert "knowledge_base.tenant_id is null" in sql
    assert "knowledge_base.tenant_id = " not in sql


def test_audience_and_locale_filters_allow_unscoped_entries() -> None:
    sql = _compiled_sql()
    assert "knowledge_base.audience is null" in sql
    assert "?|" in sql
    assert "knowledge_base.locale is null" in sql
    assert "knowledge_base.locale like" in sql


def test_filters_are_skipped_when_unset() -> None:
    sql = _compiled_sql(audience=None, locale=None)
    assert "knowledge_base.audience is null" not in sql
    assert "knowledge_base.locale is null" not in sql


@pytest.mark.asyncio
async def test_dimension_mismatch_fails_before_querying() -> None:
    def _no_sessions():
        raise AssertionError("session should not be opened")

    retriever = PgVectorKnowledgeRetriever(_no_sessions)  # type: ignore[arg-type]
    with pytest.raises(RetrievalError):
        await retriever.search(
            [0.1, 0.2],
            audience=None,
            locale=None,
            tenant_id=None,
            top_k=3,
            min_similarity=0.7,
        )
