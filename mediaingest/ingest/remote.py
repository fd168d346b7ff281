"""Resolve remote links into partial asset records.

Links are dispatched over an ordered list of providers; the first provider
whose host matcher accepts the URL handles it, and anything left over goes
through the generic fetch path.
"""

from __future__ import annotations

import base64
import html
import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Callable, Dict, Optional, Sequence, Tuple, Union
from urllib.parse import parse_qs, unquote, urlparse

import httpx

from mediaingest.core.config import Settings
from mediaingest.core.errors import (
    ProviderCredentialInvalid,
    ProviderIdentifierMissing,
    ProviderUnavailable,
    SourceUnavailable,
    UnidentifiableMedia,
)
from mediaingest.core.logging import get_logger
from mediaingest.schemas import AssetRecord, LinkUnavailable, utc_now

from .metadata import image_dimensions

__all__ = [
    "DEFAULT_PROVIDERS",
    "EMBED_HEIGHT",
    "EMBED_WIDTH",
    "FetchResult",
    "Provider",
    "RemoteFetcher",
    "host_contains",
    "parse_iso8601_duration",
    "to_data_url",
]

FetchResult = Union[AssetRecord, LinkUnavailable]

EMBED_WIDTH = 560
EMBED_HEIGHT = 340

YOUTUBE_API_URL = "https://www.googleapis.com/youtube/v3/videos"
YOUTUBE_PREVIEW_URL = "http://img.youtube.com/vi/{video_id}/0.jpg"
VIMEO_API_URL = "https://vimeo.com/api/v2/video/{video_id}.json"

_VIMEO_ID = re.compile(r"vimeo\.com/([0-9]{1,10})")
_MARKUP = re.compile(r"<[^>]*>")
_ISO_DURATION = re.compile(
    r"^P(?:(?P<years>\d+)Y)?(?:(?P<months>\d+)M)?(?:(?P<weeks>\d+)W)?(?:(?P<days>\d+)D)?"
    r"(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+(?:\.\d+)?)S)?)?$"
)
_DURATION_SECONDS = {
    "years": 365 * 86400,
    "months": 30 * 86400,
    "weeks": 7 * 86400,
    "days": 86400,
    "hours": 3600,
    "minutes": 60,
    "seconds": 1,
}

Handler = Callable[["RemoteFetcher", str], AssetRecord]


@dataclass(frozen=True, slots=True)
class Provider:
    name: str
    matches: Callable[[str], bool]
    handler: Handler


def host_contains(fragment: str) -> Callable[[str], bool]:
    def _matches(url: str) -> bool:
        try:
            netloc = urlparse(url).netloc
        except ValueError:
            return False
        return fragment in (netloc or "").lower()

    return _matches


def parse_iso8601_duration(value: str) -> int:
    """Convert an ISO-8601 duration such as ``PT1H2M3S`` into whole seconds.

    Years and months are counted as 365 and 30 days.
    """
    match = _ISO_DURATION.match(value.strip()) if value else None
    if not match or value.strip() in {"P", "PT"}:
        raise ValueError(f"Invalid ISO-8601 duration: {value!r}")
    total = 0.0
    for unit, amount in match.groupdict().items():
        if amount:
            total += float(amount) * _DURATION_SECONDS[unit]
    return int(total)


def to_data_url(content: bytes, content_type: str) -> str:
    return f"data:{content_type};base64,{base64.b64encode(content).decode('ascii')}"


def strip_markup(text: str) -> str:
    return html.unescape(_MARKUP.sub("", text)).strip()


class RemoteFetcher:
    """Turn a URL into a partial :class:`AssetRecord`."""

    def __init__(
        self,
        settings: Settings,
        *,
        client: Optional[httpx.Client] = None,
        storage_adapter: Optional[str] = None,
        providers: Sequence[Provider] | None = None,
    ) -> None:
        self.settings = settings
        self.client = client or httpx.Client(
            timeout=settings.http_timeout_s,
            headers={"User-Agent": f"{settings.app_name}/remote-fetcher"},
        )
        self.storage_adapter = storage_adapter
        self.providers = tuple(DEFAULT_PROVIDERS if providers is None else providers)
        self.logger = get_logger(component="remote_fetcher")

    def fetch(self, url: str) -> FetchResult:
        for provider in self.providers:
            if provider.matches(url):
                self.logger.info("link_dispatched", provider=provider.name, url=url)
                return provider.handler(self, url)
        return self.fetch_generic(url)

    def fetch_youtube(self, url: str) -> AssetRecord:
        values = parse_qs(urlparse(url).query).get("v") or []
        video_id = next((value.strip() for value in values if value.strip()), None)
        if not video_id:
            raise ProviderIdentifierMissing("YouTube", url)

        fields: Dict[str, Any] = {"title": f"YouTube Video: {video_id}", "size": 0}
        api_key = self.settings.youtube_api_key
        if api_key:
            try:
                fields = self._youtube_details(video_id, api_key)
            except ProviderUnavailable as exc:
                self.logger.warning("provider_api_failed", provider="youtube", video_id=video_id, reason=exc.reason)
                fields = {"title": "Unable to retrieve YouTube title", "size": 0}

        preview, _ = self._download(YOUTUBE_PREVIEW_URL.format(video_id=video_id))
        return AssetRecord(
            type="embed/youtube",
            name=f"youtube_{video_id}.jpg",
            charset="",
            url=video_id,
            width=EMBED_WIDTH,
            height=EMBED_HEIGHT,
            data=to_data_url(preview, "image/jpeg"),
            date_uploaded=utc_now(),
            storage_adapter=self.storage_adapter,
            **fields,
        )

    def _youtube_details(self, video_id: str, api_key: str) -> Dict[str, Any]:
        params = {"id": video_id, "key": api_key, "part": "snippet,contentDetails"}
        try:
            payload = self.client.get(YOUTUBE_API_URL, params=params).json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ProviderUnavailable("YouTube", str(exc)) from exc

        if not isinstance(payload, dict):
            raise ProviderUnavailable("YouTube", "unexpected response shape")
        items = payload.get("items") or []
        if not items:
            if "error" in payload:
                raise ProviderCredentialInvalid("YouTube")
            raise ProviderUnavailable("YouTube", "video not found")

        item = items[0]
        snippet = item.get("snippet") or {}
        details = item.get("contentDetails") or {}
        try:
            duration = parse_iso8601_duration(details.get("duration") or "")
        except ValueError as exc:
            raise ProviderUnavailable("YouTube", str(exc)) from exc
        return {
            "title": snippet.get("title") or "",
            "caption": snippet.get("description") or "",
            "tags": ",".join(snippet.get("tags") or []),
            "size": duration,
        }

    def fetch_vimeo(self, url: str) -> AssetRecord:
        match = _VIMEO_ID.search(url)
        if not match:
            raise ProviderIdentifierMissing("Vimeo", url)
        video_id = match.group(1)

        base = {
            "type": "embed/vimeo",
            "name": f"vimeo_{video_id}.jpg",
            "charset": "",
            "url": video_id,
            "date_uploaded": utc_now(),
            "storage_adapter": self.storage_adapter,
        }
        try:
            details = self._vimeo_details(video_id)
        except ProviderUnavailable as exc:
            self.logger.warning("provider_api_failed", provider="vimeo", video_id=video_id, reason=exc.reason)
            return AssetRecord(
                **base,
                title="Unable to retrieve Vimeo title",
                size=0,
                width=EMBED_WIDTH,
                height=EMBED_HEIGHT,
            )

        data = None
        thumbnail_url = details.pop("thumbnail_url", None)
        if thumbnail_url:
            try:
                preview, _ = self._download(thumbnail_url)
                data = to_data_url(preview, "image/jpeg")
            except SourceUnavailable as exc:
                self.logger.warning("provider_preview_failed", provider="vimeo", video_id=video_id, reason=exc.reason)
        return AssetRecord(**base, **details, data=data)

    def _vimeo_details(self, video_id: str) -> Dict[str, Any]:
        try:
            response = self.client.get(VIMEO_API_URL.format(video_id=video_id), follow_redirects=True)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ProviderUnavailable("Vimeo", str(exc)) from exc
        if not isinstance(payload, list) or not payload or not isinstance(payload[0], dict):
            raise ProviderUnavailable("Vimeo", "unexpected response shape")

        video = payload[0]
        tags = video.get("tags") or ""
        if isinstance(tags, list):
            tags = ",".join(str(tag) for tag in tags)
        width, height = video.get("width"), video.get("height")
        if not width or not height:
            width, height = EMBED_WIDTH, EMBED_HEIGHT
        return {
            "title": video.get("title") or "",
            "caption": strip_markup(video.get("description") or ""),
            "size": int(video.get("duration") or 0),
            "width": int(width),
            "height": int(height),
            "tags": tags,
            "thumbnail_url": video.get("thumbnail_large"),
        }

    def fetch_generic(self, url: str) -> FetchResult:
        try:
            headers = self._head(url)
            content, get_headers = self._download(url)
        except SourceUnavailable as exc:
            self.logger.info("link_unavailable", url=url, reason=exc.reason)
            return LinkUnavailable(url=url, reason=exc.reason or "unreachable")
        headers = headers if headers is not None else get_headers

        content_type = (headers.get("content-type") or "application/octet-stream").split(";", 1)[0].strip()
        length = headers.get("content-length")
        size = int(length) if length and length.isdigit() else len(content)

        width: Optional[int] = None
        height: Optional[int] = None
        if content_type.startswith("image/"):
            try:
                width, height = image_dimensions(content)
            except UnidentifiableMedia:
                self.logger.info("link_image_undecodable", url=url, content_type=content_type)

        name, title = _name_from_url(url)
        data_url = to_data_url(content, content_type)
        return AssetRecord(
            type=content_type,
            name=name,
            title=title,
            charset="binary",
            size=size,
            width=width,
            height=height,
            data=data_url,
            url=data_url if width else "",
        )

    def _head(self, url: str) -> Optional[httpx.Headers]:
        try:
            response = self.client.head(url, follow_redirects=True)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
            raise SourceUnavailable(url, str(exc)) from exc
        if response.is_error:
            # Some servers refuse HEAD; the GET response headers are used instead.
            return None
        return response.headers

    def _download(self, url: str) -> Tuple[bytes, httpx.Headers]:
        try:
            response = self.client.get(url, follow_redirects=True)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
            raise SourceUnavailable(url, str(exc)) from exc
        return response.content, response.headers

    def close(self) -> None:
        self.client.close()


def _name_from_url(url: str) -> Tuple[str, str]:
    parsed = urlparse(url)
    name = PurePosixPath(unquote(parsed.path)).name or parsed.netloc or "link"
    stem = PurePosixPath(name).stem or name
    return name, stem


DEFAULT_PROVIDERS: Tuple[Provider, ...] = (
    Provider("youtube", host_contains("youtube.com"), RemoteFetcher.fetch_youtube),
    Provider("vimeo", host_contains("vimeo.com"), RemoteFetcher.fetch_vimeo),
)
