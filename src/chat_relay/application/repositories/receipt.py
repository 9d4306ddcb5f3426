from __future__ import annotations

from typing import Protocol
from uuid import UUID

from chat_relay.domain.value_objects.enums import ReceiptStatus


class ReceiptWriter(Protocol):
    async def advance(
        self,
        message_id: UUID,
        user_id: UUID,
        status: ReceiptStatus,
    ) -> bool:
        """Create the receipt or move it forward. Returns False when nothing changed."""
        ...
