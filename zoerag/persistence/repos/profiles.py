from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from zoerag.domain.models import Profile


async def get_profile(session: AsyncSession, subject_id: str) -> Profile | None:
    result = await session.execute(select(Profile).where(Profile.id == subject_id))
    return result.scalar_one_or_none()
