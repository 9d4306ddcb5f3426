from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel


class PresenceResponse(BaseModel):
    user_id: UUID
    is_online: bool
    connections: int
