from __future__ import annotations

import logging
from typing import Any

from zoerag.domain.state import AssistantRequest, AuthClaims, ResolvedContext
from zoerag.persistence.stores import ConversationStore
from zoerag.services.telemetry import increment_counter

logger = logging.getLogger(__name__)


def user_turn_metadata(request: AssistantRequest, context: ResolvedContext) -> dict[str, Any]:
    metadata: dict[str, Any] = {
        "audience": list(context.audience) if context.audience else None,
        "locale": context.locale,
        "timezone": request.timezone,
    }
    attachments = request.metadata.get("attachments")
    if attachments:
        metadata["attachments"] = attachments
    surface = request.metadata.get("surface")
    if isinstance(surface, str) and surface:
        metadata["surface"] = surface
    return metadata


async def record_user_turn(
    store: ConversationStore,
    *,
    request: AssistantRequest,
    claims: AuthClaims,
    context: ResolvedContext,
    content: str,
    request_id: str | None = None,
) -> str | None:
    """Upsert the conversation and log the user message; returns the conversation id.

    Both writes are best-effort. Without a conversation id later logging is
    skipped.
    """
    try:
        conversation_id = await store.upsert_conversation(
            external_session_id=request.session_id,
            tenant_id=context.tenant_id,
            user_id=claims.subject_id,
            locale=context.locale,
            audience=list(context.audience) if context.audience else None,
        )
    except Exception:  # noqa: BLE001 - logging must never block the answer
        increment_counter("conversation_log_failures_total")
        logger.warning(
            "conversation_upsert_failed request_id=%s session_id=%s",
            request_id,
            request.session_id,
            exc_info=True,
        )
        return None

    try:
        await store.add_message(
            conversation_id,
            "user",
            content,
            metadata=user_turn_metadata(request, context),
        )
    except Exception:  # noqa: BLE001 - logging must never block the answer
        increment_counter("conversation_log_failures_total")
        logger.warning(
            "user_message_log_failed request_id=%s conversation_id=%s",
            request_id,
            conversation_id,
            exc_info=True,
        )
    return conversation_id


async def record_assistant_turn(
    store: ConversationStore,
    *,
    conversation_id: str | None,
    content: str,
    response_time_ms: int | None,
    metadata: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> bool:
    if not conversation_id or not content:
        return False
    try:
        await store.add_message(
            conversation_id,
            "assistant",
            content,
            metadata=metadata,
            response_time_ms=response_time_ms,
        )
    except Exception:  # noqa: BLE001 - the caller already has the answer
        increment_counter("conversation_log_failures_total")
        logger.warning(
            "assistant_message_log_failed request_id=%s conversation_id=%s",
            request_id,
            conversation_id,
            exc_info=True,
        )
        return False
    try:
        await store.mark_assistant_reply(conversation_id)
    except Exception:  # noqa: BLE001 - timestamps are informational
        increment_counter("conversation_log_failures_total")
        logger.warning(
            "conversation_touch_failed request_id=%s conversation_id=%s",
            request_id,
            conversation_id,
            exc_info=True,
        )
    return True
