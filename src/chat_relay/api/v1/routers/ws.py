from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable
from uuid import UUID

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from chat_relay.api.deps import HubDep, get_verifier
from chat_relay.application.dto.principal import Principal
from chat_relay.application.exceptions import (
    AppError,
    AuthorizationError,
    DeliveryError,
    NotFoundError,
    PersistenceError,
    ProtocolError,
    UnreachableTargetError,
    ValidationError,
)
from chat_relay.config import settings
from chat_relay.domain.value_objects.enums import CallKind
from chat_relay.infrastructure.ws.connection import WsConnection
from chat_relay.infrastructure.ws.protocol import WsInbound, encode_event, error_event
from chat_relay.services.realtime_hub import RealtimeHub

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])

_ERROR_CODES: dict[type[AppError], str] = {
    AuthorizationError: "forbidden",
    NotFoundError: "not_found",
    ProtocolError: "protocol_error",
    UnreachableTargetError: "user_unreachable",
    PersistenceError: "server_error",
    ValidationError: "invalid_data",
}

_OPEN_EVENTS = frozenset({"ping", "setup"})


def _uuid(data: dict[str, Any], key: str) -> UUID:
    return UUID(str(data[key]))


class _Session:
    """Per-connection state handed to every event handler."""

    def __init__(self, conn: WsConnection, principal: Principal, hub: RealtimeHub) -> None:
        self.conn = conn
        self.principal = principal
        self.hub = hub

    def reply(self, event_type: str, data: dict[str, Any]) -> None:
        self._send(encode_event(event_type, data))

    def error(self, code: str, detail: str = "") -> None:
        self._send(error_event(code, detail))

    def _send(self, raw: str) -> None:
        try:
            self.conn.enqueue(raw)
        except DeliveryError as exc:
            logger.warning("Reply to %s dropped: %s", self.conn.id, exc.detail)


async def _authenticate(token: str) -> Principal | None:
    try:
        verifier = get_verifier()
        return await verifier.verify(token)
    except Exception:
        logger.debug("WS auth failed", exc_info=True)
        return None


@router.websocket("/ws")
async def ws_relay(
    websocket: WebSocket,
    hub: HubDep,
    token: str = Query(...),
) -> None:
    principal = await _authenticate(token)
    if principal is None:
        await websocket.close(code=4001, reason="Authentication failed")
        return

    conn = WsConnection(
        websocket,
        queue_size=settings.WS_OUTBOUND_QUEUE_SIZE,
        send_timeout=settings.WS_SEND_TIMEOUT_SECONDS,
    )
    await conn.open()
    hub.attach(conn)
    session = _Session(conn, principal, hub)

    heartbeat_task = asyncio.create_task(_heartbeat(session), name=f"ws-heartbeat-{conn.id}")
    try:
        await _read_loop(websocket, session)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WS error for %s (user %s)", conn.id, principal.user_id)
    finally:
        heartbeat_task.cancel()
        await hub.disconnect(conn.id)
        await conn.close()


async def _heartbeat(session: _Session) -> None:
    interval = settings.WS_HEARTBEAT_SECONDS
    while True:
        await asyncio.sleep(interval)
        if session.conn.closed:
            return
        session.reply("pong", {})


async def _read_loop(ws: WebSocket, session: _Session) -> None:
    while True:
        raw = await ws.receive_text()
        try:
            msg = WsInbound.model_validate_json(raw)
        except Exception:
            session.error("invalid_payload")
            continue

        handler = _HANDLERS.get(msg.type)
        if handler is None:
            session.error("unknown_type", msg.type)
            continue
        if msg.type not in _OPEN_EVENTS and session.hub.registry.user_of(session.conn.id) is None:
            session.error("setup_required")
            continue

        try:
            await handler(session, msg.data)
        except AppError as exc:
            session.error(_ERROR_CODES.get(type(exc), "error"), exc.detail)
        except (KeyError, ValueError, TypeError) as exc:
            session.error("invalid_data", str(exc))
        except Exception:
            logger.exception("WS %s handler failed for %s", msg.type, session.conn.id)
            session.error("server_error")


async def _handle_ping(session: _Session, data: dict[str, Any]) -> None:
    session.reply("pong", {})


async def _handle_setup(session: _Session, data: dict[str, Any]) -> None:
    claimed = data.get("user_id")
    if claimed is not None and UUID(str(claimed)) != session.principal.user_id:
        raise AuthorizationError("Token does not belong to that user")
    await session.hub.setup(session.conn.id, session.principal)
    session.reply(
        "ready",
        {"connection_id": session.conn.id, "user_id": str(session.principal.user_id)},
    )


async def _handle_join_chat(session: _Session, data: dict[str, Any]) -> None:
    await session.hub.join_chat(session.conn.id, _uuid(data, "chat_id"))


async def _handle_leave_chat(session: _Session, data: dict[str, Any]) -> None:
    session.hub.leave_chat(session.conn.id, _uuid(data, "chat_id"))


async def _handle_typing(session: _Session, data: dict[str, Any]) -> None:
    session.hub.relay_typing(session.conn.id, _uuid(data, "chat_id"), "typing")


async def _handle_stop_typing(session: _Session, data: dict[str, Any]) -> None:
    session.hub.relay_typing(session.conn.id, _uuid(data, "chat_id"), "stop_typing")


async def _handle_call_user(session: _Session, data: dict[str, Any]) -> None:
    session.hub.calls.initiate(
        session.conn.id,
        _uuid(data, "user_to_call"),
        data.get("signal"),
        caller_name=data.get("name") or session.principal.username,
        kind=CallKind(data.get("kind", CallKind.VIDEO)),
    )


async def _handle_answer_call(session: _Session, data: dict[str, Any]) -> None:
    session.hub.calls.answer(session.conn.id, data["to"], data.get("signal"))


async def _handle_decline_call(session: _Session, data: dict[str, Any]) -> None:
    session.hub.calls.decline(session.conn.id, data["to"])


async def _handle_end_call(session: _Session, data: dict[str, Any]) -> None:
    session.hub.calls.end(session.conn.id, _uuid(data, "to"))


_HANDLERS: dict[str, Callable[[_Session, dict[str, Any]], Awaitable[None]]] = {
    "ping": _handle_ping,
    "setup": _handle_setup,
    "join_chat": _handle_join_chat,
    "leave_chat": _handle_leave_chat,
    "typing": _handle_typing,
    "stop_typing": _handle_stop_typing,
    "call_user": _handle_call_user,
    "answer_call": _handle_answer_call,
    "decline_call": _handle_decline_call,
    "end_call": _handle_end_call,
}
