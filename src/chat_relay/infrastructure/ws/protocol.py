"""WebSocket message envelope models."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class WsInbound(BaseModel):
    """Client → Server."""

    type: str  # setup | join_chat | leave_chat | typing | call_user | answer_call | end_call | ping
    data: dict[str, Any] = {}


class WsOutbound(BaseModel):
    """Server → Client."""

    type: str  # user_online | new_message | messages_read | call_user | call_ended | error | pong
    data: dict[str, Any] = {}


def encode_event(event_type: str, data: dict[str, Any]) -> str:
    return WsOutbound(type=event_type, data=data).model_dump_json()


def error_event(code: str, detail: str = "") -> str:
    payload: dict[str, Any] = {"code": code}
    if detail:
        payload["detail"] = detail
    return encode_event("error", payload)
