from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from uuid import UUID

from chat_relay.domain.value_objects.enums import ReceiptStatus


@dataclass(frozen=True, slots=True)
class ReadReceipt:
    message_id: UUID
    user_id: UUID
    status: ReceiptStatus
    updated_at: datetime

    def advance(self, status: ReceiptStatus, at: datetime) -> ReadReceipt:
        """Return the receipt moved forward to ``status``.

        Receipts never regress: advancing to the current or a lower status
        returns the receipt unchanged.
        """
        if status.rank <= self.status.rank:
            return self
        return replace(self, status=status, updated_at=at)
