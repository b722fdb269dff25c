from __future__ import annotations

from zoerag.core.config import Settings
from zoerag.core.errors import ProviderConfigError
from zoerag.providers.embeddings.hashed import HashedEmbeddingProvider
from zoerag.providers.embeddings.openai_embeddings import OpenAIEmbeddingProvider


def get_embedding_provider(settings: Settings):
    provider = (settings.embedding_provider or "openai").lower()

    if provider == "fake":
        return HashedEmbeddingProvider()
    if provider == "openai":
        if not settings.openai_api_key:
            raise ProviderConfigError("OPENAI_API_KEY is required when EMBEDDING_PROVIDER=openai")
        return OpenAIEmbeddingProvider(settings)

    raise ProviderConfigError(f"Unsupported embedding provider: {provider}")
