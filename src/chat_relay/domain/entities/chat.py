from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class ChatMember:
    chat_id: UUID
    user_id: UUID
    role: str
    joined_at: datetime


@dataclass(frozen=True, slots=True)
class Chat:
    id: UUID
    is_group: bool
    name: str | None
    created_at: datetime
    updated_at: datetime
    members: list[ChatMember] = field(default_factory=list)

    @property
    def member_ids(self) -> list[UUID]:
        return [m.user_id for m in self.members]
