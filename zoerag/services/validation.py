from __future__ import annotations

from typing import Any
from uuid import uuid4

from zoerag.core.config import Settings, get_settings
from zoerag.core.errors import InvalidRequestError
from zoerag.domain.state import AssistantRequest, ChatTurn


def normalize_audience(value: Any) -> tuple[str, ...] | None:
    """Collapse a string-or-list audience into a lower-cased, deduplicated tuple.

    Returns None when nothing usable was supplied so callers can fall back to
    profile defaults.
    """
    if isinstance(value, str):
        candidates = [value]
    elif isinstance(value, (list, tuple)):
        candidates = [item for item in value if isinstance(item, str)]
    else:
        return None
    normalized: list[str] = []
    for item in candidates:
        cleaned = item.strip().lower()
        if cleaned and cleaned not in normalized:
            normalized.append(cleaned)
    return tuple(normalized) or None


def _optional_str(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    return cleaned or None


def validate_payload(body: Any, settings: Settings | None = None) -> AssistantRequest:
    """Check the raw JSON body and return the normalized request.

    Only the message list is validated strictly; optional fields that have the
    wrong shape are ignored rather than rejected.
    """
    settings = settings or get_settings()
    if not isinstance(body, dict):
        raise InvalidRequestError("Invalid request body")

    messages = body.get("messages")
    if not isinstance(messages, list) or not messages:
        raise InvalidRequestError("Invalid request body")
    if len(messages) > settings.max_messages:
        raise InvalidRequestError("Too many messages")

    turns: list[ChatTurn] = []
    for entry in messages:
        if not isinstance(entry, dict):
            raise InvalidRequestError("Invalid request body")
        content = entry.get("content")
        if not isinstance(content, str) or not content.strip():
            raise InvalidRequestError("Message content must not be empty")
        if len(content) > settings.max_message_chars:
            raise InvalidRequestError("Message too large")
        role = entry.get("role")
        turns.append(ChatTurn(role=role if isinstance(role, str) else "user", content=content))

    metadata = body.get("metadata")
    return AssistantRequest(
        messages=tuple(turns),
        audience=normalize_audience(body.get("audience")),
        locale=_optional_str(body.get("locale")),
        session_id=_optional_str(body.get("session_id")) or str(uuid4()),
        timezone=_optional_str(body.get("timezone")),
        metadata=dict(metadata) if isinstance(metadata, dict) else {},
    )
