from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from zoerag.domain.models import ConversationMessage


async def add_message(
    session: AsyncSession,
    conversation_id: UUID,
    role: str,
    content: str,
    *,
    metadata: dict[str, Any] | None = None,
    response_time_ms: int | None = None,
) -> ConversationMessage:
    # Append-only: messages are never updated after insert.
    message = ConversationMessage(
        conversation_id=conversation_id,
        role=role,
        content=content,
        metadata_json=metadata or {},
        response_time_ms=response_time_ms,
    )
    session.add(message)
    return message
