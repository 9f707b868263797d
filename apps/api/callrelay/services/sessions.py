"""Connection session lifecycle: connect, join, disconnect and cleanup."""
from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Coroutine, Dict, List, Optional, Set
from uuid import uuid4

from ..schemas.signaling import AvatarSession
from .rooms import RoomRegistry

logger = logging.getLogger(__name__)


class SessionState(str, enum.Enum):
    CONNECTED = "connected"
    JOINED = "joined"
    DISCONNECTED = "disconnected"


@dataclass(slots=True)
class Session:
    """One live client connection."""

    session_id: str
    state: SessionState = SessionState.CONNECTED
    room_id: Optional[str] = None
    avatar: Optional[AvatarSession] = None


CleanupHook = Callable[[Session], Awaitable[None]]


class SessionLifecycleManager:
    """Own every Session and keep the room registry in step with it."""

    def __init__(self, registry: RoomRegistry, *, cleanup_timeout: float = 10.0) -> None:
        self._registry = registry
        self._cleanup_timeout = cleanup_timeout
        self._sessions: Dict[str, Session] = {}
        self._cleanup_hooks: List[CleanupHook] = []
        self._background: Set[asyncio.Task] = set()

    def register_cleanup(self, hook: CleanupHook) -> None:
        """Run ``hook`` for every session that disconnects."""

        self._cleanup_hooks.append(hook)

    def connect(self, session_id: Optional[str] = None) -> Session:
        session = Session(session_id=session_id or uuid4().hex)
        self._sessions[session.session_id] = session
        logger.info("Session %s connected", session.session_id)
        return session

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def join(self, session_id: str, room_id: str) -> bool:
        """Register the session with a room; RoomFullError propagates."""

        session = self._sessions.get(session_id)
        if session is None:
            return False
        if not self._registry.join(session_id, room_id):
            return False
        session.room_id = room_id
        session.state = SessionState.JOINED
        logger.info("Session %s joined room %s", session_id, room_id)
        return True

    def attach_avatar(self, session_id: str, avatar: AvatarSession) -> tuple[bool, Optional[AvatarSession]]:
        """Associate an avatar session and return ``(attached, replaced)``.

        ``attached`` is False when the session is already gone; the caller
        then owns ``avatar`` and must close it.
        """

        session = self._sessions.get(session_id)
        if session is None:
            return False, None
        replaced = session.avatar
        session.avatar = avatar
        return True, replaced

    def disconnect(self, session_id: str) -> Optional[Session]:
        """Tear a session down; calling it again is a no-op.

        Cleanup hooks run in the background so a slow external service never
        holds up other connections.
        """

        session = self._sessions.pop(session_id, None)
        if session is None:
            return None
        session.state = SessionState.DISCONNECTED
        room_id = self._registry.leave(session_id)
        logger.info("Session %s disconnected (room=%s)", session_id, room_id)
        for hook in self._cleanup_hooks:
            self.spawn(self._run_cleanup(hook, session), name=f"cleanup-{session_id}")
        return session

    def spawn(self, coro: Coroutine, *, name: Optional[str] = None) -> asyncio.Task:
        """Start a tracked background task."""

        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def drain(self) -> None:
        """Wait for pending background work, e.g. on shutdown or in tests."""

        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _run_cleanup(self, hook: CleanupHook, session: Session) -> None:
        try:
            await asyncio.wait_for(hook(session), timeout=self._cleanup_timeout)
        except asyncio.TimeoutError:
            logger.warning("Cleanup for %s timed out after %.1fs", session.session_id, self._cleanup_timeout)
        except Exception:  # noqa: BLE001 - the client is already gone
            logger.exception("Cleanup for %s failed", session.session_id)
