from __future__ import annotations

import pytest

from zoerag.core.config import get_settings
from zoerag.services import telemetry


@pytest.fixture(autouse=True)
def isolate_settings_and_telemetry(monkeypatch) -> None:
    # Settings are cached per process and telemetry buffers are module globals.
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    get_settings.cache_clear()
    telemetry.reset()
    yield
    get_settings.cache_clear()
    telemetry.reset()
