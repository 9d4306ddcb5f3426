"""Broadcast group naming.

Personal groups carry direct notifications for one user, conversation
groups carry chat traffic. Both are plain strings so the multiplexer does
not need to know which kind it is delivering to.
"""
from __future__ import annotations

from uuid import UUID

PERSONAL_PREFIX = "user:"
CONVERSATION_PREFIX = "chat:"


def personal_group(user_id: UUID) -> str:
    return f"{PERSONAL_PREFIX}{user_id}"


def conversation_group(chat_id: UUID) -> str:
    return f"{CONVERSATION_PREFIX}{chat_id}"
