"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import json
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator
from uuid import UUID

import pytest

from chat_relay.application.dto.principal import Principal
from chat_relay.application.exceptions import DeliveryError
from chat_relay.domain.entities.chat import Chat, ChatMember
from chat_relay.domain.entities.message import Message
from chat_relay.domain.entities.read_receipt import ReadReceipt
from chat_relay.domain.value_objects.enums import ChatRole, MessageKind, ReceiptStatus
from chat_relay.services.realtime_hub import RealtimeHub

USER_A = uuid.UUID("aaaaaaaa-0000-0000-0000-000000000001")
USER_B = uuid.UUID("bbbbbbbb-0000-0000-0000-000000000002")
USER_C = uuid.UUID("cccccccc-0000-0000-0000-000000000003")


@pytest.fixture
def alice() -> Principal:
    return Principal(user_id=USER_A, username="alice")


@pytest.fixture
def bob() -> Principal:
    return Principal(user_id=USER_B, username="bob")


@pytest.fixture
def carol() -> Principal:
    return Principal(user_id=USER_C, username="carol")


class FixedClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self.current

    def tick(self, seconds: float = 1.0) -> datetime:
        self.current += timedelta(seconds=seconds)
        return self.current


def make_chat(
    *member_ids: UUID,
    chat_id: UUID | None = None,
    is_group: bool = False,
    name: str | None = None,
) -> Chat:
    cid = chat_id or uuid.uuid4()
    now = datetime.now(timezone.utc)
    return Chat(
        id=cid,
        is_group=is_group,
        name=name,
        created_at=now,
        updated_at=now,
        members=[
            ChatMember(chat_id=cid, user_id=uid, role=ChatRole.MEMBER, joined_at=now)
            for uid in member_ids
        ],
    )


def make_message(
    chat_id: UUID,
    sender_id: UUID,
    *,
    content: str = "hello",
    created_at: datetime | None = None,
) -> Message:
    return Message(
        id=uuid.uuid4(),
        chat_id=chat_id,
        sender_id=sender_id,
        kind=MessageKind.TEXT,
        content=content,
        file_url=None,
        created_at=created_at or datetime.now(timezone.utc),
    )


@dataclass
class FakeChatReader:
    _chats: dict[UUID, Chat] = field(default_factory=dict)

    def add(self, chat: Chat) -> Chat:
        self._chats[chat.id] = chat
        return chat

    async def get_by_id(self, chat_id: UUID) -> Chat | None:
        return self._chats.get(chat_id)

    async def is_member(self, chat_id: UUID, user_id: UUID) -> bool:
        chat = self._chats.get(chat_id)
        return chat is not None and user_id in chat.member_ids

    async def list_chat_ids_for_user(self, user_id: UUID) -> list[UUID]:
        return [c.id for c in self._chats.values() if user_id in c.member_ids]

    async def list_for_user(self, user_id: UUID, *, limit: int = 50) -> list[Chat]:
        chats = [c for c in self._chats.values() if user_id in c.member_ids]
        chats.sort(key=lambda c: c.updated_at, reverse=True)
        return chats[:limit]

    async def find_direct(self, user_a: UUID, user_b: UUID) -> Chat | None:
        for c in self._chats.values():
            if not c.is_group and set(c.member_ids) == {user_a, user_b}:
                return c
        return None


@dataclass
class FakeChatWriter:
    _reader: FakeChatReader
    touched: list[tuple[UUID, datetime]] = field(default_factory=list)
    fail_touch: bool = False

    async def create(self, chat: Chat) -> Chat:
        return self._reader.add(chat)

    async def touch_updated_at(self, chat_id: UUID, ts: datetime) -> None:
        if self.fail_touch:
            raise RuntimeError("chats table locked")
        self.touched.append((chat_id, ts))
        chat = self._reader._chats.get(chat_id)
        if chat is not None:
            self._reader._chats[chat_id] = replace(chat, updated_at=ts)


@dataclass
class FakeMessageReader:
    _messages: list[Message] = field(default_factory=list)
    _receipts: dict[tuple[UUID, UUID], ReadReceipt] = field(default_factory=dict)

    async def list_messages(
        self, chat_id: UUID, *, limit: int = 50, before: datetime | None = None,
    ) -> list[Message]:
        msgs = [m for m in self._messages if m.chat_id == chat_id]
        if before is not None:
            msgs = [m for m in msgs if m.created_at < before]
        msgs.sort(key=lambda m: m.created_at)
        return msgs[-limit:]

    async def latest(self, chat_id: UUID) -> Message | None:
        msgs = await self.list_messages(chat_id, limit=1)
        return msgs[0] if msgs else None

    async def list_unread_ids(self, chat_id: UUID, reader_id: UUID) -> list[UUID]:
        unread = []
        for m in self._messages:
            if m.chat_id != chat_id or m.sender_id == reader_id:
                continue
            receipt = self._receipts.get((m.id, reader_id))
            if receipt is None or receipt.status is not ReceiptStatus.READ:
                unread.append(m.id)
        return unread

    async def count_unread(self, chat_id: UUID, reader_id: UUID) -> int:
        return len(await self.list_unread_ids(chat_id, reader_id))


@dataclass
class FakeMessageWriter:
    _reader: FakeMessageReader
    created: list[Message] = field(default_factory=list)
    fail: bool = False

    async def create(self, message: Message) -> Message:
        if self.fail:
            raise RuntimeError("connection refused")
        self._reader._messages.append(message)
        self.created.append(message)
        return message


@dataclass
class FakeReceiptWriter:
    _receipts: dict[tuple[UUID, UUID], ReadReceipt]
    writes: int = 0

    async def advance(self, message_id: UUID, user_id: UUID, status: ReceiptStatus) -> bool:
        now = datetime.now(timezone.utc)
        key = (message_id, user_id)
        existing = self._receipts.get(key)
        if existing is None:
            self._receipts[key] = ReadReceipt(message_id, user_id, status, now)
            self.writes += 1
            return True
        advanced = existing.advance(status, now)
        if advanced is existing:
            return False
        self._receipts[key] = advanced
        self.writes += 1
        return True


@dataclass
class FakePresenceWriter:
    calls: list[tuple[str, UUID, datetime | None]] = field(default_factory=list)
    fail: bool = False
    delay: float = 0.0

    async def set_online(self, user_id: UUID) -> None:
        await self._write("online", user_id, None)

    async def set_offline(self, user_id: UUID, last_seen_at: datetime) -> None:
        await self._write("offline", user_id, last_seen_at)

    async def _write(self, what: str, user_id: UUID, ts: datetime | None) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("users table unavailable")
        self.calls.append((what, user_id, ts))


@dataclass
class FakeUoW:
    """In-memory UoW for unit tests."""
    chats: FakeChatReader = field(default_factory=FakeChatReader)
    chats_w: FakeChatWriter | None = None
    messages: FakeMessageReader = field(default_factory=FakeMessageReader)
    messages_w: FakeMessageWriter | None = None
    receipts_w: FakeReceiptWriter | None = None
    presence_w: FakePresenceWriter = field(default_factory=FakePresenceWriter)
    commits: int = 0
    rollbacks: int = 0

    def __post_init__(self) -> None:
        if self.chats_w is None:
            self.chats_w = FakeChatWriter(self.chats)
        if self.messages_w is None:
            self.messages_w = FakeMessageWriter(self.messages)
        if self.receipts_w is None:
            self.receipts_w = FakeReceiptWriter(self.messages._receipts)

    @property
    def _committed(self) -> bool:
        return self.commits > 0

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1


def uow_factory_for(uow: FakeUoW):
    """Every opened unit of work shares the same in-memory store."""

    @asynccontextmanager
    async def _open() -> AsyncIterator[FakeUoW]:
        yield uow

    return _open


@dataclass
class FakeConnection:
    """Outbound side of a connection that records what it was sent."""

    id: str
    events: list[dict[str, Any]] = field(default_factory=list)
    broken: bool = False

    def enqueue(self, raw: str) -> None:
        if self.broken:
            raise DeliveryError(f"Connection {self.id} is closed")
        self.events.append(json.loads(raw))

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [e["data"] for e in self.events if e["type"] == event_type]

    @property
    def types(self) -> list[str]:
        return [e["type"] for e in self.events]


@pytest.fixture
def uow() -> FakeUoW:
    return FakeUoW()


@pytest.fixture
def hub(uow: FakeUoW) -> RealtimeHub:
    return RealtimeHub(uow_factory_for(uow), ring_timeout=None)


async def connect(hub: RealtimeHub, principal: Principal, connection_id: str | None = None) -> FakeConnection:
    """Attach a fake connection and run ``setup`` for it."""
    conn = FakeConnection(connection_id or f"conn-{uuid.uuid4().hex[:8]}")
    hub.attach(conn)
    await hub.setup(conn.id, principal)
    return conn
