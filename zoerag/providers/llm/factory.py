from __future__ import annotations

from zoerag.core.config import Settings
from zoerag.core.errors import ProviderConfigError
from zoerag.providers.llm.fake import FakeChatProvider
from zoerag.providers.llm.openai_chat import OpenAIChatProvider


def get_llm_provider(settings: Settings):
    provider = (settings.llm_provider or "openai").lower()

    if provider == "fake":
        return FakeChatProvider()
    if provider == "openai":
        if not settings.openai_api_key:
            raise ProviderConfigError("OPENAI_API_KEY is required when LLM_PROVIDER=openai")
        return OpenAIChatProvider(settings)

    raise ProviderConfigError(f"Unsupported LLM provider: {provider}")
