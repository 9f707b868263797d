"""HeyGen streaming-avatar client.

The provider is driven through four calls: a session token, a new streaming
session, a start request and a task that makes the avatar speak. Clients then
connect to the returned LiveKit URL themselves.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Set

import httpx

from ..core.config import settings
from ..schemas.signaling import AvatarSession

logger = logging.getLogger(__name__)

_pending_stops: Set[asyncio.Task] = set()


class AvatarUnavailableError(RuntimeError):
    """Raised when the avatar provider is misconfigured or answers badly."""


def _build_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=settings.heygen_api_url.rstrip("/") + "/",
        timeout=settings.heygen_http_timeout_seconds,
        headers={"Content-Type": "application/json"},
    )


def _data(response: httpx.Response) -> dict[str, Any]:
    response.raise_for_status()
    body = response.json()
    data = body.get("data") if isinstance(body, dict) else None
    if not isinstance(data, dict):
        raise AvatarUnavailableError(f"Unexpected HeyGen response from {response.request.url}")
    return data


async def _open_session(client: httpx.AsyncClient, text: str) -> AvatarSession:
    if not settings.heygen_api_key.strip():
        raise AvatarUnavailableError("HEYGEN_API_KEY is missing")

    token_data = _data(
        await client.post("streaming.create_token", json={}, headers={"X-Api-Key": settings.heygen_api_key})
    )
    session_token = token_data.get("token")
    if not session_token:
        raise AvatarUnavailableError("HeyGen did not return a session token")
    auth = {"Authorization": f"Bearer {session_token}"}

    session_data = _data(
        await client.post(
            "streaming.new",
            json={
                "quality": settings.heygen_quality,
                "avatar_name": settings.heygen_avatar_name,
                "voice": {"voice_id": settings.heygen_voice_id, "rate": settings.heygen_voice_rate},
                "version": "v2",
                "video_encoding": "H264",
            },
            headers=auth,
        )
    )
    session_id = session_data.get("session_id")
    if not session_id:
        raise AvatarUnavailableError("HeyGen did not return a session id")
    logger.info("Created HeyGen streaming session %s", session_id)
    avatar = AvatarSession(
        session_id=session_id,
        url=session_data.get("url"),
        access_token=session_data.get("access_token"),
        session_token=session_token,
    )

    # the provider session exists from here on; stop it if setup does not finish
    try:
        (await client.post("streaming.start", json={"session_id": session_id}, headers=auth)).raise_for_status()
        (
            await client.post(
                "streaming.task",
                json={"session_id": session_id, "text": text, "task_type": settings.heygen_task_type},
                headers=auth,
            )
        ).raise_for_status()
    except BaseException:
        await _stop_abandoned(avatar)
        raise

    return avatar


async def _stop_abandoned(avatar: AvatarSession) -> None:
    task = asyncio.ensure_future(close_avatar_session(avatar))
    _pending_stops.add(task)
    task.add_done_callback(_pending_stops.discard)
    await asyncio.shield(task)


async def create_avatar_session(text: str) -> Optional[AvatarSession]:
    """Start an avatar session speaking ``text``; ``None`` when it cannot."""

    try:
        async with _build_client() as client:
            return await _open_session(client, text)
    except AvatarUnavailableError as exc:
        logger.warning("Avatar session unavailable: %s", exc)
    except httpx.HTTPStatusError as exc:
        logger.error(
            "HeyGen request %s failed with %s: %s",
            exc.request.url,
            exc.response.status_code,
            exc.response.text,
        )
    except (httpx.HTTPError, ValueError) as exc:
        logger.error("Error setting up HeyGen streaming: %s", exc)
    return None


async def close_avatar_session(avatar: Optional[AvatarSession]) -> None:
    """Stop a streaming session; safe to call with nothing to close."""

    if avatar is None or not avatar.session_id or not avatar.session_token:
        return

    try:
        async with _build_client() as client:
            response = await client.post(
                "streaming.stop",
                json={"session_id": avatar.session_id},
                headers={"Authorization": f"Bearer {avatar.session_token}"},
            )
            response.raise_for_status()
        logger.info("Closed HeyGen streaming session %s", avatar.session_id)
    except httpx.HTTPError as exc:
        logger.error("Error closing HeyGen session %s: %s", avatar.session_id, exc)
