"""Storage for images attached to user messages."""
from __future__ import annotations

import asyncio
import base64
import binascii
import re
import time
from pathlib import Path

from ..core.config import settings

_DATA_URL_PREFIX = re.compile(r"^data:image/\w+;base64,")


def uploads_dir() -> Path:
    return Path(settings.uploads_dir)


def decode_image(data: str) -> bytes:
    """Decode a base64 JPEG, accepting an optional data-URL prefix."""

    stripped = _DATA_URL_PREFIX.sub("", data.strip())
    try:
        return base64.b64decode(stripped, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Image payload is not valid base64") from exc


async def save_image(image: bytes, session_id: str) -> str:
    """Persist an uploaded image and return its file name."""

    filename = f"{int(time.time() * 1000)}_{session_id}.jpg"
    target = uploads_dir() / filename

    def _write() -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(image)

    await asyncio.get_running_loop().run_in_executor(None, _write)
    return filename


def resolve_upload(filename: str) -> Path | None:
    """Return the stored file for ``filename`` or ``None`` if absent."""

    if not filename or Path(filename).name != filename or filename in {".", ".."}:
        return None
    path = uploads_dir() / filename
    return path if path.is_file() else None
