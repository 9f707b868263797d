"""Websocket connection gateway for the signaling relay."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from ..schemas.signaling import InboundEvent, InboundEventType, SignalKind, UserMessage, error_event
from .assistant import AssistantService
from .rooms import RoomFullError
from .sessions import Session, SessionLifecycleManager
from .signaling import OutboxPeer, SignalingRelay

logger = logging.getLogger(__name__)

_SIGNAL_EVENTS = {
    InboundEventType.OFFER: SignalKind.OFFER,
    InboundEventType.ANSWER: SignalKind.ANSWER,
    InboundEventType.ICE_CANDIDATE: SignalKind.ICE_CANDIDATE,
}


class ConnectionGateway:
    """Accept client connections and dispatch their events.

    Frames from one connection are handled strictly in arrival order; only
    user messages leave the read loop, as background tasks.
    """

    def __init__(
        self,
        relay: SignalingRelay,
        lifecycle: SessionLifecycleManager,
        assistant: AssistantService,
        *,
        outbox_max_messages: int = 256,
    ) -> None:
        self._relay = relay
        self._lifecycle = lifecycle
        self._assistant = assistant
        self._outbox_max = outbox_max_messages

    async def serve(self, websocket: WebSocket) -> None:
        await websocket.accept()
        session = self._lifecycle.connect()
        outbox = OutboxPeer(session.session_id, self._outbox_max)
        self._relay.attach(session.session_id, outbox)
        writer = asyncio.create_task(self._pump(websocket, outbox), name=f"writer-{session.session_id}")

        try:
            while True:
                frame = await websocket.receive()
                if frame["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(frame.get("code", 1000))
                raw = frame.get("text")
                if raw is None:
                    raw = frame.get("bytes") or b""
                self.dispatch(session, raw)
        except WebSocketDisconnect:
            pass
        finally:
            self._lifecycle.disconnect(session.session_id)
            self._relay.detach(session.session_id)
            outbox.close()
            try:
                await asyncio.wait_for(writer, timeout=1.0)
            except asyncio.TimeoutError:
                logger.debug("Writer for %s did not drain in time", session.session_id)

    def dispatch(self, session: Session, raw: str | bytes | dict[str, Any]) -> None:
        """Handle one inbound frame for ``session``."""

        try:
            data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
            event = InboundEvent.model_validate(data)
        except (ValueError, ValidationError) as exc:
            logger.warning("Rejected frame from %s: %s", session.session_id, exc)
            self._relay.send(session.session_id, error_event("Invalid message"))
            return

        if event.room_id is None:
            self._relay.send(session.session_id, error_event("room_id is required"))
            return

        if event.type is InboundEventType.JOIN_ROOM:
            try:
                self._lifecycle.join(session.session_id, event.room_id)
            except RoomFullError as exc:
                logger.warning("Session %s refused: %s", session.session_id, exc)
                self._relay.send(session.session_id, error_event("Room is full"))
        elif event.type in _SIGNAL_EVENTS:
            self._relay.route(session.session_id, event.room_id, _SIGNAL_EVENTS[event.type], event.payload)
        elif event.type is InboundEventType.USER_MESSAGE:
            try:
                message = UserMessage.model_validate(event.payload or {})
            except ValidationError:
                self._relay.send(session.session_id, error_event("Invalid message"))
                return
            self._lifecycle.spawn(
                self._assistant.handle_user_message(session.session_id, event.room_id, message),
                name=f"user-message-{session.session_id}",
            )

    async def _pump(self, websocket: WebSocket, outbox: OutboxPeer) -> None:
        while True:
            message = await outbox.queue.get()
            if message is None:
                return
            try:
                await websocket.send_json(message)
            except Exception as exc:  # noqa: BLE001 - transport is going away
                logger.debug("Writer for %s stopped: %s", outbox.session_id, exc)
                return
