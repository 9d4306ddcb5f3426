from __future__ import annotations

import pytest

from chat_relay.application.exceptions import ProtocolError
from chat_relay.infrastructure.ws.registry import ConnectionRegistry
from tests.conftest import USER_A, USER_B, FakeConnection


def _registry(*ids: str) -> ConnectionRegistry:
    registry = ConnectionRegistry()
    for cid in ids:
        registry.add(FakeConnection(cid))
    return registry


def test_bind_makes_user_resolvable():
    registry = _registry("c1", "c2")

    assert registry.bind("c1", USER_A) is True
    assert registry.bind("c2", USER_A) is True

    assert registry.resolve(USER_A) == {"c1", "c2"}
    assert registry.user_of("c1") == USER_A
    assert registry.is_online(USER_A)
    assert not registry.is_online(USER_B)


def test_rebind_same_user_is_idempotent():
    registry = _registry("c1")
    registry.bind("c1", USER_A)

    assert registry.bind("c1", USER_A) is False
    assert registry.resolve(USER_A) == {"c1"}


def test_rebind_to_other_user_rejected():
    registry = _registry("c1")
    registry.bind("c1", USER_A)

    with pytest.raises(ProtocolError):
        registry.bind("c1", USER_B)
    assert registry.user_of("c1") == USER_A


def test_bind_unknown_connection_rejected():
    with pytest.raises(ProtocolError):
        ConnectionRegistry().bind("ghost", USER_A)


def test_discard_removes_user_when_last_connection_goes():
    registry = _registry("c1", "c2")
    registry.bind("c1", USER_A)
    registry.bind("c2", USER_A)

    assert registry.discard("c1") == USER_A
    assert registry.is_online(USER_A)

    assert registry.discard("c2") == USER_A
    assert not registry.is_online(USER_A)
    assert len(registry) == 0


def test_discard_unbound_connection_returns_none():
    registry = _registry("c1")

    assert registry.discard("c1") is None
    assert registry.discard("c1") is None
    assert registry.get("c1") is None


def test_resolve_returns_a_copy():
    registry = _registry("c1")
    registry.bind("c1", USER_A)

    registry.resolve(USER_A).clear()

    assert registry.resolve(USER_A) == {"c1"}


def test_second_unbind_returns_none():
    registry = _registry("c1")
    registry.bind("c1", USER_A)

    assert registry.unbind("c1") == USER_A
    assert registry.unbind("c1") is None
    assert registry.get("c1") is not None
