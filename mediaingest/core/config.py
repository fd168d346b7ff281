from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable, Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

FILES_SETTING_KEYS: tuple[str, ...] = (
    "thumbnail_size",
    "thumbnail_quality",
    "thumbnail_crop_enabled",
    "file_naming",
    "youtube_api_key",
)


class Settings(BaseSettings):
    """Centralised runtime configuration for the media ingestion pipeline."""

    model_config = SettingsConfigDict(
        env_prefix="MEDIAINGEST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "mediaingest"
    environment: str = Field(default="development", description="Deployment environment label.")
    log_level: str = Field(default="info")
    log_format: Literal["json", "console"] = Field(default="json", description="Structured log rendering.")

    storage_backend: Literal["local", "memory"] = Field(default="local", description="Active storage implementation.")
    storage_root: Path = Field(default_factory=lambda: Path("media"), description="Root directory for the local adapter.")

    thumbnail_size: int = Field(default=200, gt=0, description="Longest thumbnail edge in pixels.")
    thumbnail_quality: int = Field(default=100, ge=0, le=100, description="Encoder quality for lossy thumbnails.")
    thumbnail_crop_enabled: bool = Field(default=True, description="Center-crop thumbnails to a square.")
    file_naming: Literal["original", "hash"] = Field(
        default="original",
        description="Keep the uploaded file name or replace it with an md5 hash.",
    )
    youtube_api_key: Optional[str] = Field(default=None, description="YouTube Data API v3 key.")

    http_timeout_s: float = Field(default=10.0, gt=0, description="Timeout applied to every remote fetch.")
    max_name_attempts: int = Field(default=10_000, gt=0, description="Upper bound on collision-resolution attempts.")

    @field_validator("file_naming", mode="before")
    @classmethod
    def _normalise_file_naming(cls, value: Any) -> Any:
        if isinstance(value, str) and value.lower() == "file_hash":
            return "hash"
        return value

    @field_validator("youtube_api_key", mode="before")
    @classmethod
    def _blank_key_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def environment_lower(self) -> str:
        return self.environment.lower()

    def get(self, domain: str, keys: Iterable[str]) -> dict[str, Any]:
        """Return the requested keys of a settings domain as a plain mapping.

        Only the ``files`` domain exists; unknown keys are left out rather than
        raising so callers can ask for optional values such as the API key.
        """
        if domain != "files":
            raise KeyError(f"Unknown settings domain: {domain}")
        values: dict[str, Any] = {}
        for key in keys:
            if key in FILES_SETTING_KEYS:
                values[key] = getattr(self, key)
        return values


@lru_cache()
def get_settings() -> Settings:
    load_dotenv(".env", override=False)

    _ENV_ALIAS_MAP = {
        "MEDIAINGEST_ENV": "MEDIAINGEST_ENVIRONMENT",
        "MEDIAINGEST_ROOT": "MEDIAINGEST_STORAGE_ROOT",
    }

    for source, target in _ENV_ALIAS_MAP.items():
        value = os.getenv(source)
        if value:
            os.environ[target] = value

    return Settings()


__all__ = ["FILES_SETTING_KEYS", "Settings", "get_settings"]
