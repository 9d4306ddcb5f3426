from __future__ import annotations

from uuid import UUID

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from chat_relay.domain.value_objects.enums import ReceiptStatus
from chat_relay.infrastructure.db.models.message import MessageStatusModel


class ReceiptWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def advance(
        self,
        message_id: UUID,
        user_id: UUID,
        status: ReceiptStatus,
    ) -> bool:
        """Monotonic upsert: an existing receipt only moves forward."""
        lower = [s.value for s in status.below()]
        stmt = (
            pg_insert(MessageStatusModel)
            .values(message_id=message_id, user_id=user_id, status=status.value)
            .on_conflict_do_update(
                constraint="uq_message_status_reader",
                set_={"status": status.value, "updated_at": func.now()},
                where=MessageStatusModel.status.in_(lower),
            )
            .returning(MessageStatusModel.id)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None
