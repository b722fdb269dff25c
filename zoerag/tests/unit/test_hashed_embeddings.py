from __future__ import annotations

import math

import pytest

from zoerag.core.config import EMBED_DIM
from zoerag.providers.embeddings.hashed import HashedEmbeddingProvider, embed_text


def test_embed_text_is_deterministic_and_normalized() -> None:
    first = embed_text("Scholarships for nursing students")
    second = embed_text("Scholarships for nursing students")
    assert first == second
    assert len(first) == EMBED_DIM
    assert math.isclose(math.sqrt(sum(value * value for value in first)), 1.0, rel_tol=1e-6)


def test_empty_text_gives_zero_vector() -> None:
    assert embed_text("!!!") == [0.0] * EMBED_DIM


@pytest.mark.asyncio
async def test_provider_wraps_embed_text() -> None:
    assert await HashedEmbeddingProvider().embed("visa") == embed_text("visa")


def test_case_and_accents_are_folded() -> None:
    assert embed_text("Études à Montréal") == embed_text("etudes a montreal")


def test_word_order_changes_the_vector() -> None:
    assert embed_text("student visa") != embed_text("visa student")
