from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import func, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from zoerag.core.errors import DatabaseError
from zoerag.domain.models import Conversation


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def build_upsert_statement(
    *,
    external_session_id: str,
    tenant_id: str | None,
    user_id: str | None,
    locale: str | None,
    audience: list[str] | None,
    now: datetime,
) -> Any:
    values = {
        "external_session_id": external_session_id,
        "tenant_id": tenant_id,
        "user_id": user_id,
        "locale": locale,
        "audience": audience,
        "last_user_message_at": now,
    }
    stmt = insert(Conversation).values(**values)
    # Race-safe: a concurrent request with the same session id updates the same row.
    stmt = stmt.on_conflict_do_update(
        index_elements=[Conversation.external_session_id],
        set_={
            # Keep previously known values when a later request omits them.
            "tenant_id": func.coalesce(stmt.excluded.tenant_id, Conversation.tenant_id),
            "user_id": func.coalesce(stmt.excluded.user_id, Conversation.user_id),
            "locale": func.coalesce(stmt.excluded.locale, Conversation.locale),
            "audience": func.coalesce(stmt.excluded.audience, Conversation.audience),
            "last_user_message_at": stmt.excluded.last_user_message_at,
            "updated_at": now,
        },
    )
    return stmt.returning(Conversation.id)


async def upsert_conversation(
    session: AsyncSession,
    *,
    external_session_id: str,
    tenant_id: str | None,
    user_id: str | None,
    locale: str | None,
    audience: list[str] | None,
) -> UUID:
    stmt = build_upsert_statement(
        external_session_id=external_session_id,
        tenant_id=tenant_id,
        user_id=user_id,
        locale=locale,
        audience=audience,
        now=_utc_now(),
    )
    result = await session.execute(stmt)
    conversation_id = result.scalar_one_or_none()
    if conversation_id is None:
        raise DatabaseError("conversation upsert returned no id")
    return conversation_id


async def mark_assistant_reply(session: AsyncSession, conversation_id: UUID) -> None:
    now = _utc_now()
    await session.execute(
        update(Conversation)
        .where(Conversation.id == conversation_id)
        .values(last_assistant_message_at=now, updated_at=now)
    )
