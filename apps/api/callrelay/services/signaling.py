"""In-memory WebRTC signaling relay."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Protocol

from ..schemas.signaling import SignalKind, signal_event
from .rooms import RoomRegistry

logger = logging.getLogger(__name__)


class Peer(Protocol):
    """Anything that can accept an outbound event without blocking."""

    def deliver(self, message: dict) -> None: ...


class OutboxPeer:
    """Bounded per-connection outbox drained by the connection's writer."""

    def __init__(self, session_id: str, max_messages: int = 256) -> None:
        self.session_id = session_id
        self.queue: asyncio.Queue[Optional[dict]] = asyncio.Queue(maxsize=max_messages)

    def deliver(self, message: dict) -> None:
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning(
                "Outbox full for %s; dropping %s event", self.session_id, message.get("type", "unknown")
            )

    def close(self) -> None:
        """Wake the writer so it can exit even when the outbox is full."""

        while True:
            try:
                self.queue.put_nowait(None)
                return
            except asyncio.QueueFull:
                self.queue.get_nowait()


class SignalingRelay:
    """Fan negotiation messages out to the other members of a room."""

    def __init__(self, registry: RoomRegistry) -> None:
        self._registry = registry
        self._peers: Dict[str, Peer] = {}

    def attach(self, session_id: str, peer: Peer) -> None:
        self._peers[session_id] = peer

    def detach(self, session_id: str) -> None:
        self._peers.pop(session_id, None)

    def route(self, sender_id: str, room_id: str, kind: SignalKind, payload: Any) -> int:
        """Forward ``payload`` untouched to every other member of ``room_id``.

        Returns the number of recipients; an empty room is not an error.
        """

        message = signal_event(SignalKind(kind), room_id, sender_id, payload)
        return self.broadcast(room_id, message, exclude=sender_id)

    def broadcast(self, room_id: str, message: dict, *, exclude: Optional[str] = None) -> int:
        """Send a message to all room members except ``exclude``."""

        delivered = 0
        for member_id in sorted(self._registry.members_of(room_id, excluding=exclude)):
            if self.send(member_id, message):
                delivered += 1
        return delivered

    def send(self, session_id: str, message: dict) -> bool:
        peer = self._peers.get(session_id)
        if peer is None:
            logger.debug("No connection attached for %s; dropping %s", session_id, message.get("type"))
            return False
        try:
            peer.deliver(message)
        except Exception:  # noqa: BLE001 - one broken peer must not stop the fan-out
            logger.exception("Delivery to %s failed", session_id)
            return False
        return True
