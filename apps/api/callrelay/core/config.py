"""Application configuration for the call relay."""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    log_level: str = Field(default="INFO")
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])
    uploads_dir: str = Field(default="public/uploads")

    room_capacity: int = Field(default=2, ge=0, description="Members per room, 0 for unbounded")
    outbox_max_messages: int = Field(default=256, ge=1)
    collaborator_timeout_seconds: float = Field(default=30.0, gt=0)
    cleanup_timeout_seconds: float = Field(default=10.0, gt=0)

    gemini_api_key: str = Field(default="")
    gemini_model: str = Field(default="gemini-2.0-flash")
    gemini_model_fallbacks: list[str] = Field(default_factory=lambda: [
        "gemini-2.0-flash-lite",
        "gemini-1.5-flash-latest",
    ])
    gemini_temperature: float = Field(default=0.7)
    gemini_top_k: int = Field(default=40)
    gemini_top_p: float = Field(default=0.95)
    gemini_max_output_tokens: int = Field(default=800)

    heygen_api_key: str = Field(default="")
    heygen_api_url: str = Field(default="https://api.heygen.com/v1")
    heygen_avatar_name: str = Field(default="Wayne_20240711")
    heygen_voice_id: str = Field(default="")
    heygen_voice_rate: float = Field(default=1.0)
    heygen_quality: str = Field(default="high")
    heygen_task_type: Literal["repeat", "talk"] = Field(default="repeat")
    heygen_http_timeout_seconds: float = Field(default=15.0, gt=0)

    @field_validator("gemini_model_fallbacks", "cors_allow_origins", mode="before")
    @classmethod
    def _split_csv(cls, value: object) -> object:
        """Allow comma-separated env values for list settings."""

        if isinstance(value, str):
            parts = [item.strip() for item in value.split(",") if item.strip()]
            return parts
        return value


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


settings = get_settings()
