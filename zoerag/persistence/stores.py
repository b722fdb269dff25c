from __future__ import annotations

from typing import Any, Protocol
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from zoerag.domain.state import CallerProfile
from zoerag.persistence.repos import conversations as conversations_repo
from zoerag.persistence.repos import messages as messages_repo
from zoerag.persistence.repos import profiles as profiles_repo


class ProfileStore(Protocol):
    async def get_profile(self, subject_id: str) -> CallerProfile | None:
        ...


class ConversationStore(Protocol):
    async def upsert_conversation(
        self,
        *,
        external_session_id: str,
        tenant_id: str | None,
        user_id: str | None,
        locale: str | None,
        audience: list[str] | None,
    ) -> str:
        ...

    async def add_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        *,
        metadata: dict[str, Any] | None = None,
        response_time_ms: int | None = None,
    ) -> None:
        ...

    async def mark_assistant_reply(self, conversation_id: str) -> None:
        ...


class SqlProfileStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_profile(self, subject_id: str) -> CallerProfile | None:
        async with self._session_factory() as session:
            row = await profiles_repo.get_profile(session, subject_id)
        if row is None:
            return None
        return CallerProfile(tenant_id=row.tenant_id, locale=row.locale, role=row.role)


class SqlConversationStore:
    # Each operation runs in its own short transaction so one failed write cannot poison the next.
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def upsert_conversation(
        self,
        *,
        external_session_id: str,
        tenant_id: str | None,
        user_id: str | None,
        locale: str | None,
        audience: list[str] | None,
    ) -> str:
        async with self._session_factory() as session:
            try:
                conversation_id = await conversations_repo.upsert_conversation(
                    session,
                    external_session_id=external_session_id,
                    tenant_id=tenant_id,
                    user_id=user_id,
                    locale=locale,
                    audience=audience,
                )
                await session.commit()
            except Exception:
                await session.rollback()
                raise
        return str(conversation_id)

    async def add_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        *,
        metadata: dict[str, Any] | None = None,
        response_time_ms: int | None = None,
    ) -> None:
        async with self._session_factory() as session:
            try:
                await messages_repo.add_message(
                    session,
                    UUID(conversation_id),
                    role,
                    content,
                    metadata=metadata,
                    response_time_ms=response_time_ms,
                )
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def mark_assistant_reply(self, conversation_id: str) -> None:
        async with self._session_factory() as session:
            try:
                await conversations_repo.mark_assistant_reply(session, UUID(conversation_id))
                await session.commit()
            except Exception:
                await session.rollback()
                raise
