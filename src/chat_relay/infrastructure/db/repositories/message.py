from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from chat_relay.domain.entities.message import Message
from chat_relay.domain.value_objects.enums import ReceiptStatus
from chat_relay.infrastructure.db.mappers import message as mapper
from chat_relay.infrastructure.db.models.message import MessageModel, MessageStatusModel


def _unread_by(chat_id: UUID, reader_id: UUID):
    read = exists().where(
        and_(
            MessageStatusModel.message_id == MessageModel.id,
            MessageStatusModel.user_id == reader_id,
            MessageStatusModel.status == ReceiptStatus.READ.value,
        )
    )
    return and_(
        MessageModel.chat_id == chat_id,
        MessageModel.sender_id != reader_id,
        ~read,
    )


class MessageReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_messages(
        self,
        chat_id: UUID,
        *,
        limit: int = 50,
        before: datetime | None = None,
    ) -> list[Message]:
        stmt = (
            select(MessageModel)
            .where(MessageModel.chat_id == chat_id)
            .order_by(MessageModel.created_at.desc(), MessageModel.id.desc())
            .limit(limit)
        )
        if before is not None:
            stmt = stmt.where(MessageModel.created_at < before)
        result = await self._session.execute(stmt)
        rows = list(result.scalars().all())
        rows.reverse()
        return [mapper.model_to_entity(m) for m in rows]

    async def latest(self, chat_id: UUID) -> Message | None:
        stmt = (
            select(MessageModel)
            .where(MessageModel.chat_id == chat_id)
            .order_by(MessageModel.created_at.desc(), MessageModel.id.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def list_unread_ids(self, chat_id: UUID, reader_id: UUID) -> list[UUID]:
        stmt = (
            select(MessageModel.id)
            .where(_unread_by(chat_id, reader_id))
            .order_by(MessageModel.created_at, MessageModel.id)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def count_unread(self, chat_id: UUID, reader_id: UUID) -> int:
        stmt = select(func.count(MessageModel.id)).where(_unread_by(chat_id, reader_id))
        result = await self._session.execute(stmt)
        return result.scalar_one()


class MessageWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, message: Message) -> Message:
        model = mapper.entity_to_model(message)
        self._session.add(model)
        await self._session.flush()
        return mapper.model_to_entity(model)
