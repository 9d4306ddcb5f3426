from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from chat_relay.domain.entities.chat import Chat


class ChatReader(Protocol):
    async def get_by_id(self, chat_id: UUID) -> Chat | None: ...

    async def is_member(self, chat_id: UUID, user_id: UUID) -> bool: ...

    async def list_chat_ids_for_user(self, user_id: UUID) -> list[UUID]: ...

    async def list_for_user(self, user_id: UUID, *, limit: int = 50) -> list[Chat]:
        """Chats the user belongs to, most recently active first."""
        ...

    async def find_direct(self, user_a: UUID, user_b: UUID) -> Chat | None:
        """Existing one-to-one chat between exactly these two users."""
        ...


class ChatWriter(Protocol):
    async def create(self, chat: Chat) -> Chat: ...

    async def touch_updated_at(self, chat_id: UUID, ts: datetime) -> None: ...
