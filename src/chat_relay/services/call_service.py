"""Call signaling relay.

Pairs a caller connection with the connections of a callee user and passes
offer/answer/candidate payloads between them verbatim.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any
from uuid import UUID

from chat_relay.application.exceptions import ProtocolError, UnreachableTargetError
from chat_relay.application.ports.clock import Clock, system_clock
from chat_relay.application.ports.realtime import Broadcaster, PresenceDirectory
from chat_relay.domain.entities.call_session import CallSession
from chat_relay.domain.value_objects.enums import CallKind, CallState

logger = logging.getLogger(__name__)


class CallSignalingRelay:
    def __init__(
        self,
        directory: PresenceDirectory,
        broadcaster: Broadcaster,
        *,
        ring_timeout: float | None = None,
        clock: Clock = system_clock,
    ) -> None:
        self._directory = directory
        self._broadcaster = broadcaster
        self._ring_timeout = ring_timeout
        self._clock = clock
        self._sessions: dict[str, CallSession] = {}
        self._by_connection: dict[str, set[str]] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}

    def get(self, call_id: str) -> CallSession | None:
        return self._sessions.get(call_id)

    def sessions_for(self, connection_id: str) -> list[CallSession]:
        return [self._sessions[cid] for cid in self._by_connection.get(connection_id, ())]

    def initiate(
        self,
        caller_connection_id: str,
        callee_user_id: UUID,
        signal: Any,
        *,
        caller_name: str | None = None,
        kind: CallKind = CallKind.VIDEO,
    ) -> CallSession:
        caller_user_id = self._directory.user_of(caller_connection_id)
        if caller_user_id is None:
            raise ProtocolError("Connection must complete setup before calling")

        targets = self._directory.resolve(callee_user_id)
        targets.discard(caller_connection_id)
        if not targets:
            raise UnreachableTargetError("User is not online")

        session = CallSession(
            id=uuid.uuid4().hex,
            caller_connection_id=caller_connection_id,
            caller_user_id=caller_user_id,
            callee_user_id=callee_user_id,
            callee_connection_ids=targets,
            kind=kind,
            created_at=self._clock.now(),
        )
        delivered = self._broadcaster.send_to_connections(
            targets,
            "call_user",
            {
                "call_id": session.id,
                "signal": signal,
                "from": str(caller_user_id),
                "name": caller_name,
                "caller_connection_id": caller_connection_id,
                "kind": kind.value,
            },
        )
        if not delivered:
            raise UnreachableTargetError("User is not reachable")

        session.transition(CallState.RINGING)
        self._register(session)
        self._arm_timeout(session)
        logger.info(
            "Call %s ringing: %s -> %s (%d device(s))",
            session.id, caller_user_id, callee_user_id, delivered,
        )
        return session

    def answer(
        self,
        callee_connection_id: str,
        caller_connection_id: str,
        signal: Any,
    ) -> CallSession:
        session = self._find(
            caller_connection_id,
            lambda s: s.caller_connection_id == caller_connection_id
            and callee_connection_id in s.callee_connection_ids,
        )
        if session is None or session.state not in (CallState.RINGING, CallState.ACCEPTED):
            raise ProtocolError("No ringing call from that connection")

        if session.state is CallState.RINGING:
            session.transition(CallState.ACCEPTED)
            session.answered_by = callee_connection_id
            self._cancel_timeout(session.id)
            self._release_other_devices(session)

        self._broadcaster.send_to_connection(
            caller_connection_id,
            "call_accepted",
            {"call_id": session.id, "signal": signal},
        )
        return session

    def decline(self, callee_connection_id: str, caller_connection_id: str) -> CallSession | None:
        session = self._find(
            caller_connection_id,
            lambda s: s.caller_connection_id == caller_connection_id
            and callee_connection_id in s.callee_connection_ids
            and s.state is CallState.RINGING,
        )
        if session is None:
            return None
        session.transition(CallState.DECLINED)
        others = session.callee_connection_ids - {callee_connection_id}
        self._finish(session, "declined", {caller_connection_id} | others)
        return session

    def end(self, initiating_connection_id: str, other_user_id: UUID) -> CallSession | None:
        """End the active call between this connection and ``other_user_id``.

        Unknown or already ended calls are ignored.
        """
        for session in self.sessions_for(initiating_connection_id):
            if not session.is_active:
                continue
            if initiating_connection_id == session.caller_connection_id:
                if session.callee_user_id != other_user_id:
                    continue
                if session.state is CallState.RINGING:
                    session.transition(CallState.CANCELLED)
                self._finish(session, "ended", session.callee_targets())
                return session
            if session.caller_user_id != other_user_id:
                continue
            if session.state is CallState.RINGING:
                session.transition(CallState.DECLINED)
            others = session.callee_targets() - {initiating_connection_id}
            self._finish(session, "ended", {session.caller_connection_id} | others)
            return session
        return None

    def connection_closed(self, connection_id: str) -> list[CallSession]:
        """End or shrink every call this connection took part in."""
        ended: list[CallSession] = []
        for session in self.sessions_for(connection_id):
            if connection_id == session.caller_connection_id:
                if session.state is CallState.RINGING:
                    session.transition(CallState.CANCELLED)
                self._finish(session, "disconnected", session.callee_targets())
                ended.append(session)
            elif connection_id == session.answered_by:
                self._finish(session, "disconnected", {session.caller_connection_id})
                ended.append(session)
            elif session.state is CallState.RINGING:
                session.callee_connection_ids.discard(connection_id)
                self._unlink(connection_id, session.id)
                if not session.callee_connection_ids:
                    self._finish(session, "disconnected", {session.caller_connection_id})
                    ended.append(session)
        self._by_connection.pop(connection_id, None)
        return ended

    def _find(self, connection_id: str, predicate: Any) -> CallSession | None:
        for session in self.sessions_for(connection_id):
            if predicate(session):
                return session
        return None

    def _release_other_devices(self, session: CallSession) -> None:
        """Stop the callee devices that lost the answer race from ringing."""
        others = session.callee_connection_ids - {session.answered_by}
        if not others:
            return
        session.callee_connection_ids -= others
        for cid in others:
            self._unlink(cid, session.id)
        self._broadcaster.send_to_connections(
            others, "call_ended", {"call_id": session.id, "reason": "answered_elsewhere"},
        )

    def _unlink(self, connection_id: str, call_id: str) -> None:
        calls = self._by_connection.get(connection_id)
        if calls is None:
            return
        calls.discard(call_id)
        if not calls:
            del self._by_connection[connection_id]

    def _register(self, session: CallSession) -> None:
        self._sessions[session.id] = session
        for cid in {session.caller_connection_id, *session.callee_connection_ids}:
            self._by_connection.setdefault(cid, set()).add(session.id)

    def _unregister(self, session: CallSession) -> None:
        self._sessions.pop(session.id, None)
        for cid in {session.caller_connection_id, *session.callee_connection_ids}:
            self._unlink(cid, session.id)

    def _finish(self, session: CallSession, reason: str, recipients: set[str]) -> None:
        if session.state is not CallState.ENDED:
            session.transition(CallState.ENDED)
        self._cancel_timeout(session.id)
        self._unregister(session)
        self._broadcaster.send_to_connections(
            recipients, "call_ended", {"call_id": session.id, "reason": reason},
        )
        logger.info("Call %s ended (%s)", session.id, reason)

    def _arm_timeout(self, session: CallSession) -> None:
        if not self._ring_timeout:
            return
        loop = asyncio.get_running_loop()
        self._timers[session.id] = loop.call_later(self._ring_timeout, self._expire, session.id)

    def _cancel_timeout(self, call_id: str) -> None:
        handle = self._timers.pop(call_id, None)
        if handle is not None:
            handle.cancel()

    def _expire(self, call_id: str) -> None:
        self._timers.pop(call_id, None)
        session = self._sessions.get(call_id)
        if session is None or session.state is not CallState.RINGING:
            return
        session.transition(CallState.TIMED_OUT)
        self._finish(
            session, "timeout", {session.caller_connection_id} | session.callee_connection_ids,
        )
