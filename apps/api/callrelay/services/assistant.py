"""User-message pipeline: model reply, avatar session, room broadcast."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from ..schemas.signaling import AiResponse, AvatarSession, UserMessage, ai_response_event, error_event
from . import avatar as avatar_service
from . import llm
from . import uploads
from .sessions import Session, SessionLifecycleManager
from .signaling import SignalingRelay

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Failed to process your message"

CompletionFn = Callable[[str, Optional[bytes]], Awaitable[str]]
AvatarFactory = Callable[[str], Awaitable[Optional[AvatarSession]]]
AvatarCloser = Callable[[Optional[AvatarSession]], Awaitable[None]]


class AssistantService:
    """Answer user messages through the external collaborators.

    Collaborator failures are reported to the requesting client only; the
    relay keeps routing for everyone else.
    """

    def __init__(
        self,
        relay: SignalingRelay,
        lifecycle: SessionLifecycleManager,
        *,
        timeout: float = 30.0,
        complete: CompletionFn | None = None,
        create_avatar: AvatarFactory | None = None,
        close_avatar: AvatarCloser | None = None,
    ) -> None:
        self._relay = relay
        self._lifecycle = lifecycle
        self._timeout = timeout
        self._complete = complete or llm.generate_completion
        self._create_avatar = create_avatar or avatar_service.create_avatar_session
        self._close_avatar = close_avatar or avatar_service.close_avatar_session

    async def handle_user_message(self, session_id: str, room_id: str, message: UserMessage) -> None:
        logger.info("Message from %s in room %s: %s", session_id, room_id, message.text)

        try:
            image: Optional[bytes] = None
            if message.image:
                image = uploads.decode_image(message.image)
                filename = await uploads.save_image(image, session_id)
                logger.info("Saved image %s", filename)
            text = await asyncio.wait_for(self._complete(message.text, image), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning("Completion for %s timed out after %.1fs", session_id, self._timeout)
            self._relay.send(session_id, error_event(GENERIC_ERROR))
            return
        except Exception:  # noqa: BLE001 - surfaced to the client as a generic error
            logger.exception("Error processing message from %s", session_id)
            self._relay.send(session_id, error_event(GENERIC_ERROR))
            return

        avatar = await self._open_avatar(session_id, text)
        self._relay.broadcast(room_id, ai_response_event(room_id, AiResponse(text=text, session=avatar)))

    async def close_session_avatar(self, session: Session) -> None:
        """Cleanup hook: close whatever avatar the session still holds."""

        await self._close_avatar(session.avatar)

    async def _open_avatar(self, session_id: str, text: str) -> Optional[AvatarSession]:
        try:
            avatar = await asyncio.wait_for(self._create_avatar(text), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning("Avatar session for %s timed out after %.1fs", session_id, self._timeout)
            return None
        except Exception:  # noqa: BLE001 - reply text is still worth delivering
            logger.exception("Avatar session for %s failed", session_id)
            return None
        if avatar is None:
            return None

        attached, replaced = self._lifecycle.attach_avatar(session_id, avatar)
        if not attached:
            logger.info("Session %s left before avatar %s was ready; closing it", session_id, avatar.session_id)
            self._lifecycle.spawn(self._close_avatar(avatar), name=f"avatar-close-{avatar.session_id}")
        elif replaced is not None and replaced.session_id != avatar.session_id:
            self._lifecycle.spawn(self._close_avatar(replaced), name=f"avatar-close-{replaced.session_id}")
        return avatar
