"""Wire contracts for the signaling websocket."""
from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, Field


class InboundEventType(str, enum.Enum):
    JOIN_ROOM = "join-room"
    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "ice-candidate"
    USER_MESSAGE = "user-message"


class SignalKind(str, enum.Enum):
    """Negotiation messages the relay forwards without inspection."""

    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "ice-candidate"


class OutboundEventType(str, enum.Enum):
    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "ice-candidate"
    AI_RESPONSE = "ai-response"
    ERROR = "error"


class InboundEvent(BaseModel):
    type: InboundEventType
    room_id: str | None = Field(default=None, min_length=1, description="Target room")
    payload: Any = None


class UserMessage(BaseModel):
    text: str = ""
    image: str | None = Field(default=None, description="Base64 JPEG, optionally as a data URL")


class AvatarSession(BaseModel):
    """Streaming avatar handle returned to clients."""

    session_id: str
    url: str | None = None
    access_token: str | None = None
    session_token: str | None = None


class AiResponse(BaseModel):
    text: str
    session: AvatarSession | None = None


class RoomMembersResponse(BaseModel):
    room_id: str
    members: list[str]


def signal_event(kind: SignalKind, room_id: str, sender_id: str, payload: Any) -> dict[str, Any]:
    """Envelope for a relayed negotiation message."""

    return {
        "type": kind.value,
        "room_id": room_id,
        "participant_id": sender_id,
        "payload": payload,
    }


def ai_response_event(room_id: str, response: AiResponse) -> dict[str, Any]:
    return {
        "type": OutboundEventType.AI_RESPONSE.value,
        "room_id": room_id,
        "payload": response.model_dump(mode="json"),
    }


def error_event(message: str) -> dict[str, Any]:
    return {"type": OutboundEventType.ERROR.value, "payload": {"message": message}}
