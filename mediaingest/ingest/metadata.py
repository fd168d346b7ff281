"""Content-based metadata extraction for ingested buffers."""

from __future__ import annotations

from dataclasses import dataclass, replace
from io import BytesIO
from typing import Any, Dict, Optional, Tuple

import magic
from PIL import Image, IptcImagePlugin, UnidentifiedImageError

from mediaingest.core.errors import UnidentifiableMedia
from mediaingest.core.logging import get_logger

__all__ = ["MediaInfo", "detect_mime", "extract_metadata", "image_dimensions", "read_iptc"]

logger = get_logger(component="metadata")

_IPTC_TITLE = (2, 5)
_IPTC_KEYWORDS = (2, 25)
_IPTC_CAPTION = (2, 120)
# Order in which location parts are joined.
_IPTC_LOCATION = ((2, 92), (2, 90), (2, 101))

_detector = magic.Magic(mime=True, mime_encoding=True)


@dataclass(frozen=True, slots=True)
class MediaInfo:
    """Attributes derived from a raw byte buffer."""

    type: str
    charset: str
    size: int
    width: Optional[int] = None
    height: Optional[int] = None
    caption: Optional[str] = None
    title: Optional[str] = None
    tags: Optional[str] = None
    location: Optional[str] = None

    @property
    def category(self) -> str:
        return self.type.split("/", 1)[0]

    @property
    def format(self) -> str:
        _, _, subtype = self.type.partition("/")
        return subtype

    def descriptive_fields(self) -> Dict[str, str]:
        """Embedded descriptive values that were actually present."""
        fields = {
            "caption": self.caption,
            "title": self.title,
            "tags": self.tags,
            "location": self.location,
        }
        return {key: value for key, value in fields.items() if value is not None}


def detect_mime(buffer: bytes) -> Tuple[str, str]:
    """Return ``(mime_type, charset)`` detected from the buffer's signature."""
    try:
        raw = _detector.from_buffer(buffer)
    except magic.MagicException as exc:
        raise UnidentifiableMedia(f"content type detection failed: {exc}") from exc
    mime_type, _, params = raw.partition(";")
    charset = ""
    for param in params.split(";"):
        key, _, value = param.strip().partition("=")
        if key == "charset":
            charset = value
    return mime_type.strip(), charset


def image_dimensions(buffer: bytes) -> Tuple[int, int]:
    try:
        with Image.open(BytesIO(buffer)) as image:
            return image.size
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise UnidentifiableMedia(f"unable to decode image: {exc}") from exc


def read_iptc(buffer: bytes) -> Dict[str, str]:
    """Map embedded IPTC fields to record fields; empty when none are present."""
    try:
        with Image.open(BytesIO(buffer)) as image:
            iptc = IptcImagePlugin.getiptcinfo(image)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as exc:
        logger.warning("iptc_read_failed", error=str(exc))
        return {}
    if not iptc:
        return {}

    fields: Dict[str, str] = {}
    if _IPTC_CAPTION in iptc:
        fields["caption"] = _first(iptc[_IPTC_CAPTION])
    title = _first(iptc.get(_IPTC_TITLE))
    if title:
        fields["title"] = title
    if _IPTC_KEYWORDS in iptc:
        fields["tags"] = ",".join(_all(iptc[_IPTC_KEYWORDS]))
    location = [part for part in (_first(iptc.get(tag)) for tag in _IPTC_LOCATION) if part]
    if location:
        fields["location"] = ", ".join(location)
    return fields


def extract_metadata(buffer: bytes) -> MediaInfo:
    """Derive type, charset, size and, for images, dimensions and IPTC fields."""
    mime_type, charset = detect_mime(buffer)
    info = MediaInfo(type=mime_type, charset=charset, size=len(buffer))
    if info.category != "image":
        return info

    width, height = image_dimensions(buffer)
    attributes: Dict[str, Any] = {"width": width, "height": height}
    attributes.update(read_iptc(buffer))
    return replace(info, **attributes)


def _decode(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace").strip("\x00").strip()
    return str(value).strip()


def _all(value: Any) -> list[str]:
    if value is None:
        return []
    values = value if isinstance(value, list) else [value]
    return [_decode(item) for item in values if item is not None]


def _first(value: Any) -> str:
    values = _all(value)
    return values[0] if values else ""
