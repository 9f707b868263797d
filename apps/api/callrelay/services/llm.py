"""Language-model helper built on Gemini Flash."""
from __future__ import annotations

import asyncio
import logging
from functools import lru_cache
from typing import Any, Dict, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from ..core.config import settings

IMAGE_PROMPT_TEMPLATE = (
    "You are an AI assistant in a video chat for emotional well-being. The user has sent the "
    'message: "{text}" along with an image. Please respond conversationally to the user. Do not '
    "return JSON data, bounding boxes, or technical analysis unless specifically asked. Be kind "
    "and supportive."
)

logger = logging.getLogger(__name__)


class LLMUnavailableError(RuntimeError):
    """Raised when no configured Gemini models are available."""


def _has_api_key() -> bool:
    return bool(settings.gemini_api_key.strip())


@lru_cache
def _configured_api() -> bool:
    """Configure the Google Generative AI client once."""

    if not _has_api_key():
        raise RuntimeError("GEMINI_API_KEY is missing")

    genai.configure(api_key=settings.gemini_api_key)
    return True


_model_cache: Dict[str, genai.GenerativeModel] = {}


def _get_model(name: str) -> genai.GenerativeModel:
    """Return a cached Gemini model instance."""

    _configured_api()
    model_name = name.strip()
    if not model_name:
        raise RuntimeError("Gemini model name was empty")

    if model_name not in _model_cache:
        _model_cache[model_name] = genai.GenerativeModel(model_name)
    return _model_cache[model_name]


def _candidate_models() -> list[str]:
    candidates: list[str] = []
    seen: set[str] = set()
    for candidate in (settings.gemini_model, *settings.gemini_model_fallbacks):
        if candidate and candidate not in seen:
            candidates.append(candidate)
            seen.add(candidate)
    return candidates


def _build_request(text: str, image: Optional[bytes]) -> tuple[Any, Optional[dict[str, Any]]]:
    """Return ``(contents, generation_config)`` for a single user turn."""

    if image is not None:
        contents = [
            IMAGE_PROMPT_TEMPLATE.format(text=text.strip()),
            {"mime_type": "image/jpeg", "data": image},
        ]
        return contents, None

    generation_config = {
        "temperature": settings.gemini_temperature,
        "top_k": settings.gemini_top_k,
        "top_p": settings.gemini_top_p,
        "max_output_tokens": settings.gemini_max_output_tokens,
    }
    return [{"role": "user", "parts": [text]}], generation_config


async def generate_completion(text: str, image: Optional[bytes] = None) -> str:
    """Return the model's reply for a user message and optional JPEG image."""

    if not _has_api_key():
        raise LLMUnavailableError("GEMINI_API_KEY is missing")

    loop = asyncio.get_running_loop()
    contents, generation_config = _build_request(text, image)
    last_error: Exception | None = None

    for model_name in _candidate_models():
        def _run_inference(current_model: str = model_name) -> str:
            model = _get_model(current_model)
            if generation_config is None:
                response = model.generate_content(contents)
            else:
                response = model.generate_content(contents, generation_config=generation_config)
            reply = getattr(response, "text", "") or ""
            return reply.strip()

        try:
            result = await loop.run_in_executor(None, _run_inference)
        except google_exceptions.NotFound as exc:
            logger.warning("Gemini model %s not available: %s", model_name, exc)
            _model_cache.pop(model_name, None)
            last_error = exc
            continue
        except Exception as exc:  # noqa: BLE001
            logger.exception("Gemini generate_content failed for %s", model_name)
            last_error = exc
            continue

        if result:
            logger.info("Gemini %s replied (%d chars, image=%s)", model_name, len(result), image is not None)
            return result
        logger.warning("Gemini %s returned an empty reply", model_name)

    raise LLMUnavailableError("No Gemini models responded") from last_error
