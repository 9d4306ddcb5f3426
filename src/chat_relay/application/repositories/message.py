from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from chat_relay.domain.entities.message import Message


class MessageReader(Protocol):
    async def list_messages(
        self,
        chat_id: UUID,
        *,
        limit: int = 50,
        before: datetime | None = None,
    ) -> list[Message]:
        """Oldest first; ``before`` pages backwards from a timestamp."""
        ...

    async def latest(self, chat_id: UUID) -> Message | None: ...

    async def list_unread_ids(self, chat_id: UUID, reader_id: UUID) -> list[UUID]:
        """Messages not sent by the reader that lack a READ receipt for them."""
        ...

    async def count_unread(self, chat_id: UUID, reader_id: UUID) -> int: ...


class MessageWriter(Protocol):
    async def create(self, message: Message) -> Message: ...
