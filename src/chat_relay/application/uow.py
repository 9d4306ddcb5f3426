from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Callable, Protocol

from chat_relay.application.repositories.chat import ChatReader, ChatWriter
from chat_relay.application.repositories.message import MessageReader, MessageWriter
from chat_relay.application.repositories.receipt import ReceiptWriter
from chat_relay.application.repositories.user import PresenceWriter


class UnitOfWork(Protocol):
    chats: ChatReader
    chats_w: ChatWriter
    messages: MessageReader
    messages_w: MessageWriter
    receipts_w: ReceiptWriter
    presence_w: PresenceWriter

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...
    async def flush(self) -> None: ...


# Opens a fresh Unit of Work; used by long-lived WS handlers and the presence publisher.
UowFactory = Callable[[], AbstractAsyncContextManager[UnitOfWork]]
