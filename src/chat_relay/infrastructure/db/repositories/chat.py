from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from chat_relay.domain.entities.chat import Chat
from chat_relay.infrastructure.db.mappers import chat as mapper
from chat_relay.infrastructure.db.models.chat import ChatMemberModel, ChatModel


class ChatReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, chat_id: UUID) -> Chat | None:
        result = await self._session.get(ChatModel, chat_id)
        return mapper.model_to_entity(result) if result else None

    async def is_member(self, chat_id: UUID, user_id: UUID) -> bool:
        stmt = (
            select(ChatMemberModel.id)
            .where(
                ChatMemberModel.chat_id == chat_id,
                ChatMemberModel.user_id == user_id,
            )
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def list_chat_ids_for_user(self, user_id: UUID) -> list[UUID]:
        stmt = select(ChatMemberModel.chat_id).where(ChatMemberModel.user_id == user_id)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def list_for_user(self, user_id: UUID, *, limit: int = 50) -> list[Chat]:
        stmt = (
            select(ChatModel)
            .join(ChatMemberModel, ChatMemberModel.chat_id == ChatModel.id)
            .where(ChatMemberModel.user_id == user_id)
            .order_by(ChatModel.updated_at.desc(), ChatModel.id)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def find_direct(self, user_a: UUID, user_b: UUID) -> Chat | None:
        pair = (
            select(ChatMemberModel.chat_id)
            .where(ChatMemberModel.user_id.in_([user_a, user_b]))
            .group_by(ChatMemberModel.chat_id)
            .having(func.count(ChatMemberModel.user_id.distinct()) == 2)
        )
        stmt = (
            select(ChatModel)
            .where(ChatModel.is_group.is_(False), ChatModel.id.in_(pair))
            .order_by(ChatModel.created_at)
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None


class ChatWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, chat: Chat) -> Chat:
        model = mapper.entity_to_model(chat)
        self._session.add(model)
        await self._session.flush()
        return mapper.model_to_entity(model)

    async def touch_updated_at(self, chat_id: UUID, ts: datetime) -> None:
        stmt = (
            update(ChatModel)
            .where(ChatModel.id == chat_id)
            .values(updated_at=ts)
        )
        await self._session.execute(stmt)
