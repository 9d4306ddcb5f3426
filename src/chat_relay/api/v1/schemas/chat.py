from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from chat_relay.api.v1.schemas.message import MessageResponse


class CreateChatRequest(BaseModel):
    partner_id: UUID | None = None
    is_group: bool = False
    name: str | None = Field(default=None, max_length=120)
    member_ids: list[UUID] = []


class ChatMemberResponse(BaseModel):
    user_id: UUID
    role: str
    joined_at: datetime

    model_config = {"from_attributes": True}


class ChatResponse(BaseModel):
    id: UUID
    is_group: bool
    name: str | None
    members: list[ChatMemberResponse]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ChatSummaryResponse(ChatResponse):
    unread_count: int
    latest_message: MessageResponse | None
