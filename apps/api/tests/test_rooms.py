"""Tests for the room registry."""
from __future__ import annotations

import pytest

from callrelay.services.rooms import RoomFullError, RoomRegistry


def test_join_creates_room_and_is_idempotent():
    registry = RoomRegistry()

    assert registry.join("a", "abc123") is True
    assert registry.join("a", "abc123") is True

    assert registry.members_of("abc123") == frozenset({"a"})
    assert registry.room_of("a") == "abc123"
    assert registry.room_ids() == ["abc123"]


def test_join_other_room_is_ignored_until_leave():
    registry = RoomRegistry()
    registry.join("a", "room1")

    assert registry.join("a", "room2") is False
    assert registry.room_of("a") == "room1"
    assert "room2" not in registry

    registry.leave("a")
    assert registry.join("a", "room2") is True
    assert registry.members_of("room1") == frozenset()


def test_members_of_excludes_caller():
    registry = RoomRegistry()
    registry.join("a", "r")
    registry.join("b", "r")

    assert registry.members_of("r", excluding="a") == frozenset({"b"})
    assert registry.members_of("missing", excluding="a") == frozenset()


def test_leave_removes_empty_room_and_is_idempotent():
    registry = RoomRegistry()
    registry.join("a", "room1")

    assert registry.leave("a") == "room1"
    assert "room1" not in registry
    assert registry.leave("a") is None
    assert registry.leave("never-joined") is None
    assert registry.room_ids() == []


def test_capacity_rejects_extra_members():
    registry = RoomRegistry(capacity=2)
    registry.join("a", "call")
    registry.join("b", "call")

    with pytest.raises(RoomFullError):
        registry.join("c", "call")

    assert registry.members_of("call") == frozenset({"a", "b"})
    assert registry.room_of("c") is None

    # rejoining an existing member never trips the cap
    assert registry.join("b", "call") is True


def test_zero_capacity_is_unbounded():
    registry = RoomRegistry(capacity=0)
    for member in "abcde":
        registry.join(member, "party")

    assert len(registry.members_of("party")) == 5
