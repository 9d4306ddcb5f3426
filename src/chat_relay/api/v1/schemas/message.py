from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from chat_relay.domain.value_objects.enums import MessageKind


class SendMessageRequest(BaseModel):
    content: str = Field(default="", max_length=4000)
    kind: MessageKind = MessageKind.TEXT
    file_url: str | None = None


class MessageResponse(BaseModel):
    id: UUID
    chat_id: UUID
    sender_id: UUID
    kind: str
    content: str
    file_url: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class MarkReadResponse(BaseModel):
    chat_id: UUID
    marked: int
