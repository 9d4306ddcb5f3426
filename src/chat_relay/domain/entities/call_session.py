from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from chat_relay.domain.value_objects.enums import CallKind, CallState

_TRANSITIONS: dict[CallState, frozenset[CallState]] = {
    CallState.INITIATED: frozenset({CallState.RINGING, CallState.CANCELLED}),
    CallState.RINGING: frozenset(
        {CallState.ACCEPTED, CallState.DECLINED, CallState.TIMED_OUT, CallState.CANCELLED, CallState.ENDED}
    ),
    CallState.ACCEPTED: frozenset({CallState.ENDED}),
    CallState.DECLINED: frozenset({CallState.ENDED}),
    CallState.TIMED_OUT: frozenset({CallState.ENDED}),
    CallState.CANCELLED: frozenset({CallState.ENDED}),
    CallState.ENDED: frozenset(),
}

ACTIVE_STATES = frozenset({CallState.INITIATED, CallState.RINGING, CallState.ACCEPTED})


class InvalidCallTransition(Exception):
    def __init__(self, current: CallState, target: CallState) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Cannot move call from {current} to {target}")


@dataclass(slots=True)
class CallSession:
    """One call attempt between a caller connection and a callee user.

    The signaling payloads themselves are never kept here.
    """

    id: str
    caller_connection_id: str
    caller_user_id: UUID
    callee_user_id: UUID
    callee_connection_ids: set[str]
    kind: CallKind
    created_at: datetime
    state: CallState = CallState.INITIATED
    answered_by: str | None = None
    history: list[CallState] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_STATES

    def transition(self, target: CallState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise InvalidCallTransition(self.state, target)
        self.history.append(self.state)
        self.state = target

    def callee_targets(self) -> set[str]:
        """Connections on the callee side that should hear about this call."""
        if self.answered_by is not None:
            return {self.answered_by}
        return set(self.callee_connection_ids)
