from __future__ import annotations

import hashlib
import math
import re
import unicodedata

from zoerag.core.config import EMBED_DIM


# Questions arrive in several locales, so tokens are any Unicode word characters.
_WORD_RE = re.compile(r"\w+", re.UNICODE)
_BIGRAM_WEIGHT = 0.5


def _fold(text: str) -> str:
    # "Études" and "etudes" should land on the same features.
    decomposed = unicodedata.normalize("NFKD", text.casefold())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def _features(text: str) -> list[tuple[str, float]]:
    words = _WORD_RE.findall(_fold(text))
    features = [(word, 1.0) for word in words]
    features.extend((f"{left} {right}", _BIGRAM_WEIGHT) for left, right in zip(words, words[1:]))
    return features


def _slot(feature: str) -> tuple[int, float]:
    digest = hashlib.blake2b(feature.encode("utf-8"), digest_size=8).digest()
    bucket = int.from_bytes(digest[:4], "big") % EMBED_DIM
    sign = -1.0 if digest[4] & 1 else 1.0
    return bucket, sign


def embed_text(text: str) -> list[float]:
    """Signed feature-hashing embedding over words and adjacent word pairs.

    Deterministic and offline; the result is L2-normalized so cosine distance in
    pgvector behaves like it does for provider vectors. Text without any word
    characters maps to the zero vector.
    """
    vector = [0.0] * EMBED_DIM
    for feature, weight in _features(text):
        bucket, sign = _slot(feature)
        vector[bucket] += sign * weight

    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return vector
    return [value / norm for value in vector]


class HashedEmbeddingProvider:
    # Selected with EMBEDDING_PROVIDER=fake for local runs without an API key.
    async def embed(self, text: str) -> list[float]:
        return embed_text(text)
