"""Signaling websocket and room diagnostics."""
from __future__ import annotations

from fastapi import APIRouter, Request, WebSocket

from ..schemas.signaling import RoomMembersResponse
from ..services.gateway import ConnectionGateway
from ..services.rooms import RoomRegistry

router = APIRouter()


@router.websocket("/signaling")
async def signaling_endpoint(websocket: WebSocket) -> None:
    """Relay SDP offers/answers and ICE candidates between room members."""

    gateway: ConnectionGateway = websocket.app.state.gateway
    await gateway.serve(websocket)


@router.get("/rooms/{room_id}", response_model=RoomMembersResponse)
async def room_members(room_id: str, request: Request) -> RoomMembersResponse:
    """Return the sessions currently joined to a room."""

    registry: RoomRegistry = request.app.state.registry
    return RoomMembersResponse(room_id=room_id, members=sorted(registry.members_of(room_id)))
