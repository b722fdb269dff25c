from __future__ import annotations

import pytest

from zoerag.domain.state import AssistantRequest, CallerProfile, ChatTurn
from zoerag.services.context import (
    load_profile,
    parse_accept_language,
    resolve_context,
    short_locale,
)
from zoerag.services.telemetry import counters_snapshot
from zoerag.tests.utils.fakes import FakeProfileStore


def _request(**overrides) -> AssistantRequest:
    values = {
        "messages": (ChatTurn(role="user", content="hi"),),
        "audience": None,
        "locale": None,
        "session_id": "s-1",
    }
    values.update(overrides)
    return AssistantRequest(**values)


def test_request_values_win_over_profile() -> None:
    profile = CallerProfile(tenant_id="t1", locale="fr-FR", role="agent")
    context = resolve_context(_request(audience=("student",), locale="es-MX"), profile, "de-DE")
    assert context.tenant_id == "t1"
    assert context.audience == ("student",)
    assert context.locale == "es-MX"
    assert context.short_locale == "es"


def test_profile_defaults_fill_missing_values() -> None:
    profile = CallerProfile(tenant_id="t1", locale="pt_BR", role=" Agent ")
    context = resolve_context(_request(), profile, "de-DE")
    assert context.audience == ("agent",)
    assert context.locale == "pt_BR"
    assert context.short_locale == "pt"


def test_accept_language_is_last_resort() -> None:
    context = resolve_context(_request(), None, "en-GB,en;q=0.9")
    assert context.tenant_id is None
    assert context.audience is None
    assert context.locale == "en-GB"
    assert context.short_locale == "en"


def test_locale_is_truncated() -> None:
    context = resolve_context(_request(locale="zh-Hant-TW-extra"), None, None)
    assert context.locale == "zh-Hant-TW"


def test_no_locale_anywhere() -> None:
    context = resolve_context(_request(), CallerProfile(), None)
    assert context.locale is None
    assert context.short_locale is None


@pytest.mark.parametrize(
    "header,expected",
    [(None, None), ("", None), ("*", None), ("fr-CA;q=0.8", "fr-CA"), ("en-US,en", "en-US")],
)
def test_parse_accept_language(header, expected) -> None:
    assert parse_accept_language(header) == expected


def test_short_locale() -> None:
    assert short_locale("EN-us") == "en"
    assert short_locale(None) is None


@pytest.mark.asyncio
async def test_profile_lookup_failure_is_soft() -> None:
    profile = await load_profile(FakeProfileStore(fail=True), "user-1", request_id="r-1")
    assert profile is None
    assert counters_snapshot()["profile_lookup_failures_total"] == 1
