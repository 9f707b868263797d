"""In-memory room membership registry."""
from __future__ import annotations

import logging
from typing import Dict, Optional, Set

logger = logging.getLogger(__name__)


class RoomFullError(RuntimeError):
    """Raised when a room already holds its maximum number of members."""

    def __init__(self, room_id: str, capacity: int) -> None:
        super().__init__(f"Room {room_id} is full ({capacity} members)")
        self.room_id = room_id
        self.capacity = capacity


class RoomRegistry:
    """Map room identifiers to the sessions that joined them.

    Every method is synchronous and never awaits, so calls made from
    connection handlers on the same event loop cannot interleave. A session
    belongs to at most one room; rooms exist only while they have members.
    """

    def __init__(self, capacity: int = 0) -> None:
        self._capacity = capacity
        self._rooms: Dict[str, Set[str]] = {}
        self._membership: Dict[str, str] = {}

    @property
    def capacity(self) -> int:
        return self._capacity

    def join(self, session_id: str, room_id: str) -> bool:
        """Add a session to a room, creating the room when unseen.

        Returns ``True`` when the session is a member afterwards. Joining the
        same room again changes nothing; a session already in another room is
        left where it is and ``False`` is returned.
        """

        current = self._membership.get(session_id)
        if current == room_id:
            return True
        if current is not None:
            logger.warning(
                "Session %s asked to join %s while still in %s; ignoring", session_id, room_id, current
            )
            return False

        members = self._rooms.get(room_id)
        if members is not None and self._capacity and len(members) >= self._capacity:
            raise RoomFullError(room_id, self._capacity)

        self._rooms.setdefault(room_id, set()).add(session_id)
        self._membership[session_id] = room_id
        return True

    def leave(self, session_id: str) -> Optional[str]:
        """Remove a session from its room and return that room, if any."""

        room_id = self._membership.pop(session_id, None)
        if room_id is None:
            return None
        members = self._rooms.get(room_id)
        if members is not None:
            members.discard(session_id)
            if not members:
                self._rooms.pop(room_id, None)
        return room_id

    def members_of(self, room_id: str, excluding: Optional[str] = None) -> frozenset[str]:
        """Return current members of a room, without ``excluding`` when given."""

        members = self._rooms.get(room_id)
        if not members:
            return frozenset()
        return frozenset(member for member in members if member != excluding)

    def room_of(self, session_id: str) -> Optional[str]:
        return self._membership.get(session_id)

    def room_ids(self) -> list[str]:
        return list(self._rooms)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms
