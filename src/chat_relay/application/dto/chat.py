from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from chat_relay.domain.entities.chat import Chat
from chat_relay.domain.entities.message import Message


@dataclass(frozen=True, slots=True)
class CreateChatDTO:
    partner_id: UUID | None = None
    is_group: bool = False
    name: str | None = None
    member_ids: list[UUID] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ChatSummaryDTO:
    chat: Chat
    unread_count: int
    latest_message: Message | None
