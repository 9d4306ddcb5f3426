"""A live WebSocket connection with a bounded outbound queue."""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Protocol

from fastapi import WebSocket

from chat_relay.application.exceptions import DeliveryError

logger = logging.getLogger(__name__)


class OutboundConnection(Protocol):
    id: str

    def enqueue(self, raw: str) -> None:
        """Queue a serialized event without blocking; raise DeliveryError if impossible."""
        ...


class WsConnection:
    """Wraps a WebSocket with a writer task draining a FIFO queue.

    Producers never await the socket: ``enqueue`` either accepts the event or
    raises ``DeliveryError`` immediately, so one slow client cannot stall a
    broadcast. Events leave the queue in the order they were enqueued.
    """

    def __init__(
        self,
        websocket: WebSocket,
        *,
        queue_size: int,
        send_timeout: float,
        connection_id: str | None = None,
    ) -> None:
        self.id = connection_id or uuid.uuid4().hex
        self._ws = websocket
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_size)
        self._send_timeout = send_timeout
        self._writer: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def open(self) -> None:
        await self._ws.accept()
        self._writer = asyncio.create_task(self._drain(), name=f"ws-writer-{self.id}")

    def enqueue(self, raw: str) -> None:
        if self._closed:
            raise DeliveryError(f"Connection {self.id} is closed")
        try:
            self._queue.put_nowait(raw)
        except asyncio.QueueFull as exc:
            raise DeliveryError(f"Outbound queue full for {self.id}") from exc

    async def _drain(self) -> None:
        while True:
            raw = await self._queue.get()
            try:
                await asyncio.wait_for(self._ws.send_text(raw), timeout=self._send_timeout)
            except Exception:
                logger.warning("WS send failed for %s, closing connection", self.id, exc_info=True)
                self._closed = True
                await self._abort()
                return

    async def _abort(self) -> None:
        # Closing the socket ends the read loop, which runs the hub cleanup.
        try:
            await self._ws.close(code=1011)
        except Exception:
            logger.debug("Close after failed send raised for %s", self.id, exc_info=True)

    async def close(self) -> None:
        self._closed = True
        if self._writer is None:
            return
        self._writer.cancel()
        try:
            await self._writer
        except asyncio.CancelledError:
            pass
