from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def utc_now() -> datetime:
    """Current UTC time truncated to whole seconds."""
    return datetime.now(timezone.utc).replace(microsecond=0)


class AssetRecord(BaseModel):
    """Canonical result of one ingestion call."""

    model_config = ConfigDict(frozen=True)

    type: str = Field(..., description="MIME type, or embed/<provider> for video embeds.")
    name: str = Field(..., description="Final storage key.")
    charset: str = Field(default="", description="Charset reported by content detection.")
    size: int = Field(default=0, description="Byte length, or duration in seconds for embeds.")
    title: str = Field(default="")
    caption: str = Field(default="")
    tags: str = Field(default="", description="Comma-joined keyword list.")
    location: str = Field(default="", description="Comma-joined location parts.")
    width: Optional[int] = Field(default=None)
    height: Optional[int] = Field(default=None)
    date_uploaded: Optional[datetime] = Field(default=None, description="UTC upload time, second precision.")
    storage_adapter: Optional[str] = Field(default=None)
    url: Optional[str] = Field(default=None, description="Provider asset id or preview data URL (embeds only).")
    data: Optional[str] = Field(default=None, description="Base64 data URL of a preview image (embeds only).")

    @field_validator("title", "caption", "tags", "location", "charset", mode="before")
    @classmethod
    def _none_is_blank(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("date_uploaded", mode="before")
    @classmethod
    def _parse_date(cls, value: Any) -> Any:
        if isinstance(value, str):
            return datetime.strptime(value, DATE_FORMAT).replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def _paired_dimensions(self) -> "AssetRecord":
        if (self.width is None) != (self.height is None):
            raise ValueError("width and height must both be set or both be empty")
        return self

    @field_serializer("date_uploaded")
    def _format_date(self, value: Optional[datetime]) -> Optional[str]:
        if value is None:
            return None
        return value.astimezone(timezone.utc).strftime(DATE_FORMAT)

    @property
    def is_embed(self) -> bool:
        return self.type.startswith("embed/")

    def to_dict(self) -> Dict[str, Any]:
        payload = self.model_dump(mode="json")
        for key in ("url", "data"):
            if payload.get(key) is None:
                payload.pop(key, None)
        return payload


@dataclass(frozen=True, slots=True)
class NotAnEmbed:
    """Negative result of saving a record whose type is not ``embed/*``."""

    type: Optional[str]

    def __bool__(self) -> bool:
        return False


@dataclass(frozen=True, slots=True)
class LinkUnavailable:
    """Negative result of a generic link fetch that could not retrieve data."""

    url: str
    reason: str

    def __bool__(self) -> bool:
        return False


__all__ = ["AssetRecord", "DATE_FORMAT", "LinkUnavailable", "NotAnEmbed", "utc_now"]
