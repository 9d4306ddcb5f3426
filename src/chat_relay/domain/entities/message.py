from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Message:
    id: UUID
    chat_id: UUID
    sender_id: UUID
    kind: str
    content: str
    file_url: str | None
    created_at: datetime
