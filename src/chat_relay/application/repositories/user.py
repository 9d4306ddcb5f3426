from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID


class PresenceWriter(Protocol):
    async def set_online(self, user_id: UUID) -> None: ...

    async def set_offline(self, user_id: UUID, last_seen_at: datetime) -> None: ...
