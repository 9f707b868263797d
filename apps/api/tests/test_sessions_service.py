"""Tests for session lifecycle and disconnect cleanup."""
from __future__ import annotations

import asyncio

import pytest

from callrelay.schemas.signaling import AvatarSession
from callrelay.services.rooms import RoomFullError, RoomRegistry
from callrelay.services.sessions import Session, SessionLifecycleManager, SessionState


def _manager(capacity: int = 0, **kwargs) -> tuple[RoomRegistry, SessionLifecycleManager]:
    registry = RoomRegistry(capacity=capacity)
    return registry, SessionLifecycleManager(registry, **kwargs)


def test_connect_then_join_transitions_state():
    registry, manager = _manager()

    session = manager.connect()
    assert session.state is SessionState.CONNECTED
    assert session.room_id is None

    assert manager.join(session.session_id, "room1") is True
    assert session.state is SessionState.JOINED
    assert session.room_id == "room1"
    assert registry.members_of("room1") == frozenset({session.session_id})


def test_join_unknown_session_is_ignored():
    registry, manager = _manager()

    assert manager.join("ghost", "room1") is False
    assert "room1" not in registry


def test_join_full_room_keeps_session_connected():
    _, manager = _manager(capacity=1)
    first = manager.connect("a")
    second = manager.connect("b")
    manager.join(first.session_id, "call")

    with pytest.raises(RoomFullError):
        manager.join(second.session_id, "call")
    assert second.state is SessionState.CONNECTED
    assert second.room_id is None


@pytest.mark.asyncio
async def test_disconnect_removes_membership_and_is_idempotent():
    registry, manager = _manager()
    session = manager.connect("a")
    manager.join("a", "room1")

    gone = manager.disconnect("a")
    assert gone is session
    assert session.state is SessionState.DISCONNECTED
    assert registry.members_of("room1") == frozenset()
    assert "room1" not in registry
    assert manager.get("a") is None

    assert manager.disconnect("a") is None
    assert manager.disconnect("never-connected") is None
    await manager.drain()


@pytest.mark.asyncio
async def test_disconnect_without_join_still_runs_cleanup():
    _, manager = _manager()
    seen: list[Session] = []

    async def hook(session: Session) -> None:
        seen.append(session)

    manager.register_cleanup(hook)
    manager.connect("a")
    manager.disconnect("a")
    manager.disconnect("a")
    await manager.drain()

    assert [s.session_id for s in seen] == ["a"]
    assert seen[0].avatar is None


@pytest.mark.asyncio
async def test_failing_or_slow_cleanup_is_swallowed():
    _, manager = _manager(cleanup_timeout=0.05)
    calls: list[str] = []

    async def broken(session: Session) -> None:
        calls.append("broken")
        raise RuntimeError("provider down")

    async def slow(session: Session) -> None:
        calls.append("slow")
        await asyncio.sleep(5)

    manager.register_cleanup(broken)
    manager.register_cleanup(slow)
    manager.connect("a")

    manager.disconnect("a")
    # disconnect returns before any hook has run
    assert calls == []

    await asyncio.wait_for(manager.drain(), timeout=1)
    assert sorted(calls) == ["broken", "slow"]


@pytest.mark.asyncio
async def test_room_size_tracks_live_sessions():
    registry, manager = _manager()
    for name in ("a", "b", "c"):
        manager.connect(name)
        manager.join(name, "room")

    manager.disconnect("b")
    assert registry.members_of("room") == frozenset({"a", "c"})
    manager.disconnect("a")
    manager.disconnect("c")
    assert "room" not in registry
    await manager.drain()


def test_attach_avatar_reports_replacement_and_departure():
    _, manager = _manager()
    manager.connect("a")
    first = AvatarSession(session_id="h1", session_token="t1")
    second = AvatarSession(session_id="h2", session_token="t2")

    assert manager.attach_avatar("a", first) == (True, None)
    assert manager.attach_avatar("a", second) == (True, first)
    assert manager.get("a").avatar is second
    assert manager.attach_avatar("gone", first) == (False, None)
