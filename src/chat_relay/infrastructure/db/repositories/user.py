from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from chat_relay.infrastructure.db.models.user import UserModel


class PresenceWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def set_online(self, user_id: UUID) -> None:
        stmt = update(UserModel).where(UserModel.id == user_id).values(is_online=True)
        await self._session.execute(stmt)

    async def set_offline(self, user_id: UUID, last_seen_at: datetime) -> None:
        stmt = (
            update(UserModel)
            .where(UserModel.id == user_id)
            .values(is_online=False, last_seen_at=last_seen_at)
        )
        await self._session.execute(stmt)
