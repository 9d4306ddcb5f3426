from __future__ import annotations

from typing import Any, Iterable, Protocol
from uuid import UUID


class Broadcaster(Protocol):
    """Delivery side of the room multiplexer."""

    def join(self, connection_id: str, group: str) -> None: ...

    def broadcast(
        self,
        group: str,
        event_type: str,
        data: dict[str, Any],
        exclude: str | None = None,
    ) -> int: ...

    def broadcast_all(
        self,
        event_type: str,
        data: dict[str, Any],
        exclude: str | None = None,
    ) -> int: ...

    def send_to_user(self, user_id: UUID, event_type: str, data: dict[str, Any]) -> int: ...

    def send_to_connection(
        self, connection_id: str, event_type: str, data: dict[str, Any]
    ) -> bool: ...

    def send_to_connections(
        self, connection_ids: Iterable[str], event_type: str, data: dict[str, Any]
    ) -> int: ...


class PresenceDirectory(Protocol):
    """Read side of the connection registry."""

    def resolve(self, user_id: UUID) -> set[str]: ...

    def is_online(self, user_id: UUID) -> bool: ...

    def user_of(self, connection_id: str) -> UUID | None: ...
