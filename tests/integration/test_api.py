"""End-to-end tests for the REST API and the /ws relay over an in-memory UoW."""
from __future__ import annotations

import uuid

import jwt
import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from chat_relay.app import create_app
from chat_relay.config import settings
from tests.conftest import USER_A, USER_B, USER_C, FakeUoW, make_chat, make_message, uow_factory_for


def _make_token(user_id: uuid.UUID, username: str | None = None) -> str:
    claims = {"sub": str(user_id)}
    if username:
        claims["username"] = username
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def _auth(user_id: uuid.UUID) -> dict[str, str]:
    return {"Authorization": f"Bearer {_make_token(user_id)}"}


@pytest.fixture
def uow() -> FakeUoW:
    return FakeUoW()


@pytest.fixture
def client(uow):
    app = create_app(uow_factory=uow_factory_for(uow))
    with TestClient(app, raise_server_exceptions=False) as client:
        yield client


def _open_ws(client: TestClient, user_id: uuid.UUID, username: str | None = None):
    return client.websocket_connect(f"/ws?token={_make_token(user_id, username)}")


def _setup(ws) -> dict:
    ws.send_json({"type": "setup", "data": {}})
    return _next_of(ws, "ready")


def _next_of(ws, event_type: str) -> dict:
    while True:
        event = ws.receive_json()
        if event["type"] == event_type:
            return event["data"]


def test_healthz(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "connections": 0}


def test_invalid_token_is_unauthorized(client):
    resp = client.get("/api/v1/chats", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401


def test_create_and_list_chats(client):
    resp = client.post("/api/v1/chats", json={"partner_id": str(USER_B)}, headers=_auth(USER_A))
    assert resp.status_code == 201
    chat = resp.json()
    assert chat["is_group"] is False
    assert {m["user_id"] for m in chat["members"]} == {str(USER_A), str(USER_B)}

    again = client.post("/api/v1/chats", json={"partner_id": str(USER_A)}, headers=_auth(USER_B))
    assert again.status_code == 200
    assert again.json()["id"] == chat["id"]

    listed = client.get("/api/v1/chats", headers=_auth(USER_B))
    assert listed.status_code == 200
    [summary] = listed.json()
    assert summary["id"] == chat["id"]
    assert summary["unread_count"] == 0
    assert summary["latest_message"] is None


def test_chat_with_yourself_rejected(client):
    resp = client.post("/api/v1/chats", json={"partner_id": str(USER_A)}, headers=_auth(USER_A))
    assert resp.status_code == 422


def test_send_message_requires_membership(client, uow):
    chat = uow.chats.add(make_chat(USER_A, USER_C))

    resp = client.post(
        f"/api/v1/chats/{chat.id}/messages",
        json={"content": "let me in"},
        headers=_auth(USER_B),
    )

    assert resp.status_code == 403
    assert uow.messages_w.created == []


def test_send_message_storage_failure(client, uow):
    chat = uow.chats.add(make_chat(USER_A, USER_B))
    uow.messages_w.fail = True

    resp = client.post(
        f"/api/v1/chats/{chat.id}/messages", json={"content": "hi"}, headers=_auth(USER_A),
    )

    assert resp.status_code == 500
    assert resp.json() == {"detail": "Server error"}


def test_rest_message_reaches_websocket_member(client, uow):
    chat = uow.chats.add(make_chat(USER_A, USER_B))

    with _open_ws(client, USER_B) as ws:
        _setup(ws)
        resp = client.post(
            f"/api/v1/chats/{chat.id}/messages", json={"content": "hello"}, headers=_auth(USER_A),
        )
        assert resp.status_code == 201

        event = _next_of(ws, "new_message")

    assert event["id"] == resp.json()["id"]
    assert event["content"] == "hello"
    assert event["sender_id"] == str(USER_A)


def test_mark_read_notifies_chat(client, uow):
    chat = uow.chats.add(make_chat(USER_A, USER_B))
    uow.messages._messages.extend(make_message(chat.id, USER_B) for _ in range(2))

    with _open_ws(client, USER_B) as ws:
        _setup(ws)
        resp = client.post(f"/api/v1/chats/{chat.id}/read", headers=_auth(USER_A))
        assert resp.status_code == 200
        assert resp.json() == {"chat_id": str(chat.id), "marked": 2}

        event = _next_of(ws, "messages_read")

    assert event == {"chat_id": str(chat.id), "user_id": str(USER_A)}

    second = client.post(f"/api/v1/chats/{chat.id}/read", headers=_auth(USER_A))
    assert second.json()["marked"] == 0


def test_list_messages(client, uow):
    chat = uow.chats.add(make_chat(USER_A, USER_B))
    uow.messages._messages.append(make_message(chat.id, USER_B, content="first"))

    resp = client.get(f"/api/v1/chats/{chat.id}/messages", headers=_auth(USER_A))

    assert resp.status_code == 200
    assert [m["content"] for m in resp.json()] == ["first"]


def test_presence_endpoint(client):
    with _open_ws(client, USER_B) as ws:
        _setup(ws)
        online = client.get(f"/api/v1/presence/{USER_B}", headers=_auth(USER_A)).json()

    assert online == {"user_id": str(USER_B), "is_online": True, "connections": 1}


def test_ws_rejects_bad_token(client):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/ws?token=garbage") as ws:
            ws.receive_json()
    assert exc_info.value.code == 4001


def test_ws_events_before_setup_rejected(client):
    with _open_ws(client, USER_A) as ws:
        ws.send_json({"type": "join_chat", "data": {"chat_id": str(uuid.uuid4())}})
        error = _next_of(ws, "error")

        ws.send_json({"type": "ping"})
        _next_of(ws, "pong")

    assert error["code"] == "setup_required"


def test_ws_unknown_event_type(client):
    with _open_ws(client, USER_A) as ws:
        ws.send_json({"type": "teleport", "data": {}})
        error = _next_of(ws, "error")

    assert error == {"code": "unknown_type", "detail": "teleport"}


def test_ws_call_to_offline_user(client):
    with _open_ws(client, USER_A) as ws:
        _setup(ws)
        ws.send_json({"type": "call_user", "data": {"user_to_call": str(USER_C), "signal": {}}})
        error = _next_of(ws, "error")

    assert error["code"] == "user_unreachable"


def test_ws_call_offer_and_answer(client):
    offer = {"type": "offer", "sdp": "v=0 offer"}
    answer = {"type": "answer", "sdp": "v=0 answer"}

    with _open_ws(client, USER_A, "alice") as caller, _open_ws(client, USER_B, "bob") as callee:
        ready = _setup(caller)
        assert ready["user_id"] == str(USER_A)
        _setup(callee)
        assert _next_of(caller, "user_online") == {"user_id": str(USER_B)}

        caller.send_json({"type": "call_user", "data": {"user_to_call": str(USER_B), "signal": offer}})
        incoming = _next_of(callee, "call_user")
        assert incoming["signal"] == offer
        assert incoming["from"] == str(USER_A)
        assert incoming["name"] == "alice"
        assert incoming["caller_connection_id"] == ready["connection_id"]

        callee.send_json(
            {"type": "answer_call", "data": {"to": incoming["caller_connection_id"], "signal": answer}}
        )
        accepted = _next_of(caller, "call_accepted")
        assert accepted == {"call_id": incoming["call_id"], "signal": answer}

        caller.send_json({"type": "end_call", "data": {"to": str(USER_B)}})
        ended = _next_of(callee, "call_ended")
        assert ended == {"call_id": incoming["call_id"], "reason": "ended"}


def test_ws_typing_relayed_to_other_member(client, uow):
    chat = uow.chats.add(make_chat(USER_A, USER_B))

    with _open_ws(client, USER_A) as typist, _open_ws(client, USER_B) as reader:
        _setup(typist)
        _setup(reader)
        typist.send_json({"type": "typing", "data": {"chat_id": str(chat.id)}})
        event = _next_of(reader, "typing")

    assert event == {"chat_id": str(chat.id), "user_id": str(USER_A)}


def test_ws_disconnect_publishes_offline(client):
    with _open_ws(client, USER_A) as watcher:
        _setup(watcher)
        with _open_ws(client, USER_B) as leaver:
            _setup(leaver)
            _next_of(watcher, "user_online")
        offline = _next_of(watcher, "user_offline")

    assert offline["user_id"] == str(USER_B)


def test_get_chat(client, uow):
    chat = uow.chats.add(make_chat(USER_A, USER_B))

    assert client.get(f"/api/v1/chats/{chat.id}", headers=_auth(USER_A)).json()["id"] == str(chat.id)
    assert client.get(f"/api/v1/chats/{chat.id}", headers=_auth(USER_C)).status_code == 403
    assert client.get(f"/api/v1/chats/{uuid.uuid4()}", headers=_auth(USER_A)).status_code == 404
