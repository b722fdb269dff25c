from __future__ import annotations

import logging
import re

from zoerag.core.config import Settings, get_settings
from zoerag.domain.state import AssistantRequest, CallerProfile, ResolvedContext
from zoerag.persistence.stores import ProfileStore
from zoerag.services.telemetry import increment_counter

logger = logging.getLogger(__name__)

_REGION_SEPARATOR = re.compile(r"[-_]")


def parse_accept_language(header_value: str | None) -> str | None:
    # Take the first listed tag; quality weights are ignored.
    if not header_value:
        return None
    first = header_value.split(",", 1)[0].split(";", 1)[0].strip()
    if not first or first == "*":
        return None
    return first


def truncate_locale(value: str | None, max_chars: int) -> str | None:
    if not value:
        return None
    cleaned = value.strip()[:max_chars]
    return cleaned or None


def short_locale(locale: str | None) -> str | None:
    if not locale:
        return None
    primary = _REGION_SEPARATOR.split(locale, 1)[0].strip().lower()
    return primary or None


async def load_profile(profiles: ProfileStore, subject_id: str, *, request_id: str | None = None) -> CallerProfile | None:
    try:
        return await profiles.get_profile(subject_id)
    except Exception:  # noqa: BLE001 - a missing profile only removes default filters
        increment_counter("profile_lookup_failures_total")
        logger.warning("profile_lookup_failed request_id=%s subject_id=%s", request_id, subject_id, exc_info=True)
        return None


def resolve_context(
    request: AssistantRequest,
    profile: CallerProfile | None,
    accept_language: str | None,
    settings: Settings | None = None,
) -> ResolvedContext:
    """Merge explicit request values, profile defaults and headers into filters.

    Precedence is request, then profile, then header for locale; request, then
    profile role for audience.
    """
    settings = settings or get_settings()
    audience = request.audience
    if audience is None and profile is not None and profile.role and profile.role.strip():
        audience = (profile.role.strip().lower(),)

    locale = truncate_locale(request.locale, settings.locale_max_chars)
    if locale is None and profile is not None:
        locale = truncate_locale(profile.locale, settings.locale_max_chars)
    if locale is None:
        locale = truncate_locale(parse_accept_language(accept_language), settings.locale_max_chars)

    return ResolvedContext(
        tenant_id=profile.tenant_id if profile is not None else None,
        audience=audience,
        locale=locale,
        short_locale=short_locale(locale),
    )
