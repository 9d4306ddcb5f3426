from __future__ import annotations

from enum import StrEnum


class MessageKind(StrEnum):
    TEXT = "text"
    MEDIA = "media"
    VOICE = "voice"


class ChatRole(StrEnum):
    ADMIN = "admin"
    MEMBER = "member"


class ReceiptStatus(StrEnum):
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"

    @property
    def rank(self) -> int:
        return _RECEIPT_ORDER.index(self)

    def below(self) -> list[ReceiptStatus]:
        """Statuses that may still advance to this one."""
        return list(_RECEIPT_ORDER[: self.rank])


_RECEIPT_ORDER = (ReceiptStatus.SENT, ReceiptStatus.DELIVERED, ReceiptStatus.READ)


class CallKind(StrEnum):
    AUDIO = "audio"
    VIDEO = "video"


class CallState(StrEnum):
    INITIATED = "initiated"
    RINGING = "ringing"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    ENDED = "ended"
