from __future__ import annotations

import base64
import binascii
import time
from hashlib import md5
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union
from urllib.parse import unquote_to_bytes

from mediaingest.core import hooks as events
from mediaingest.core.config import FILES_SETTING_KEYS, Settings
from mediaingest.core.errors import SourceUnavailable, StorageFault, UnidentifiableMedia
from mediaingest.core.hooks import Hooks
from mediaingest.core.logging import get_logger
from mediaingest.core.storage import Storage
from mediaingest.ingest.metadata import MediaInfo, extract_metadata
from mediaingest.ingest.naming import NameResolver, file_name_to_title, split_name
from mediaingest.ingest.remote import FetchResult, RemoteFetcher
from mediaingest.ingest.thumbnails import (
    THUMBNAIL_DIR,
    generate_thumbnail,
    qualifies_for_thumbnail,
    thumbnail_key,
)
from mediaingest.schemas import AssetRecord, NotAnEmbed, utc_now

RecordLike = Union[AssetRecord, Mapping[str, Any]]


def decode_inline_payload(payload: Union[str, bytes]) -> bytes:
    """Return the raw bytes behind a data URL, or the payload itself otherwise."""
    if isinstance(payload, (bytes, bytearray)):
        if not bytes(payload).startswith(b"data:"):
            return bytes(payload)
        try:
            payload = bytes(payload).decode("ascii")
        except UnicodeDecodeError as exc:
            raise UnidentifiableMedia("data URL is not ASCII") from exc

    if not payload.startswith("data:"):
        return payload.encode("utf-8")

    header, separator, encoded = payload.partition(",")
    if not separator:
        raise UnidentifiableMedia("data URL has no payload")
    if header.endswith(";base64"):
        # Whitespace inside the payload (line wrapping, trailing newline) is ignored.
        encoded = "".join(encoded.split())
        try:
            return base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise UnidentifiableMedia(f"data URL payload is not valid base64: {exc}") from exc
    return unquote_to_bytes(encoded)


class Files:
    """Ingest uploads, inline payloads and remote links into a storage adapter.

    Every write or delete of a primary asset or its thumbnail is bracketed by
    a pair of hook notifications carrying the affected name and byte size.
    """

    def __init__(
        self,
        settings: Settings,
        storage: Storage,
        *,
        hooks: Optional[Hooks] = None,
        fetcher: Optional[RemoteFetcher] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self.storage = storage
        self.hooks = hooks or Hooks()
        self.files_settings = settings.get("files", FILES_SETTING_KEYS)
        self.clock = clock
        self.resolver = NameResolver(
            storage,
            naming=self.files_settings["file_naming"],
            max_attempts=settings.max_name_attempts,
            clock=clock,
        )
        self._fetcher = fetcher
        self.logger = get_logger(component="files", storage_adapter=storage.adapter_name)

    @property
    def fetcher(self) -> RemoteFetcher:
        if self._fetcher is None:
            self._fetcher = RemoteFetcher(self.settings, storage_adapter=self.storage.adapter_name)
        return self._fetcher

    def close(self) -> None:
        """Release the HTTP client of the remote fetcher, if one was created."""
        if self._fetcher is not None:
            self._fetcher.close()

    def exists(self, name: str) -> bool:
        return self.storage.exists(name)

    def rename(self, name: str, new_name: str) -> None:
        self.storage.rename(name, new_name)

    def upload_file(self, temp_path: Union[str, Path], desired_name: str) -> AssetRecord:
        """Copy a temporary upload into storage and describe it."""
        path = Path(temp_path)
        try:
            buffer = path.read_bytes()
        except OSError as exc:
            raise SourceUnavailable(str(path), exc.strerror or str(exc)) from exc
        return self._ingest(buffer, desired_name)

    def save_inline_data(self, payload: Union[str, bytes], desired_name: str) -> AssetRecord:
        """Store a data URL (base64 or percent-encoded) or raw bytes under a fresh name."""
        return self._ingest(decode_inline_payload(payload), desired_name)

    def save_embed(self, record: RecordLike) -> Union[AssetRecord, NotAnEmbed]:
        """Persist the preview image of a provider embed.

        Provider fields such as title, caption and tags are kept; only the
        resolved name, upload date and storage adapter are taken from the
        stored preview.
        """
        record_type = record.type if isinstance(record, AssetRecord) else record.get("type")
        if not isinstance(record_type, str) or not record_type.startswith("embed/"):
            return NotAnEmbed(type=record_type if isinstance(record_type, str) else None)

        if not isinstance(record, AssetRecord):
            values = dict(record)
            values["name"] = values.get("name") or self._fallback_name()
            record = AssetRecord.model_validate(values)

        if not record.data:
            self.logger.info("embed_without_preview", name=record.name, type=record.type)
            return record.model_copy(
                update={"date_uploaded": utc_now(), "storage_adapter": self.storage.adapter_name}
            )

        saved = self.save_inline_data(record.data, record.name)
        return record.model_copy(
            update={
                "name": saved.name,
                "date_uploaded": saved.date_uploaded,
                "storage_adapter": saved.storage_adapter,
            }
        )

    def get_link(self, url: str) -> FetchResult:
        return self.fetcher.fetch(url)

    def delete(self, record: RecordLike) -> Tuple[str, ...]:
        """Remove a primary asset and its thumbnail, each only if present.

        Returns:
            The keys that were deleted.
        """
        name = record.name if isinstance(record, AssetRecord) else record["name"]
        deleted = []
        if self._delete_key(name, name, events.DELETING, events.DELETED):
            deleted.append(name)

        _, extension = split_name(name)
        if extension:
            key = thumbnail_key(name)
            if self._delete_key(key, name, events.THUMBNAIL_DELETING, events.THUMBNAIL_DELETED):
                deleted.append(key)
        return tuple(deleted)

    def generate_missing_thumbnails(self) -> Dict[str, int]:
        """Create thumbnails for stored assets that lack one.

        Returns:
            Counters for generated, failed, already present and skipped assets.
        """
        statistics = {"success": 0, "failure": 0, "exists": 0, "skipped": 0}
        for name in list(self.storage.list()):
            if name.startswith(THUMBNAIL_DIR):
                continue
            _, extension = split_name(name)
            if not qualifies_for_thumbnail(extension):
                statistics["skipped"] += 1
                continue
            if self.storage.exists(thumbnail_key(name)):
                statistics["exists"] += 1
                continue
            if self._create_thumbnail(name, self.storage.read(name)):
                statistics["success"] += 1
            else:
                statistics["failure"] += 1
        self.logger.info("missing_thumbnails_generated", **statistics)
        return statistics

    def _ingest(self, buffer: bytes, desired_name: str) -> AssetRecord:
        info = extract_metadata(buffer)
        name = self.resolver.resolve(desired_name)

        payload = {"name": name, "size": len(buffer)}
        self.hooks.notify(events.SAVING, payload)
        self.storage.write(name, buffer)
        self.hooks.notify(events.SAVED, payload)
        self.logger.info("asset_saved", name=name, type=info.type, format=info.format, size=info.size)

        self._create_thumbnail(name, buffer)
        return self._build_record(info, name, desired_name)

    def _build_record(self, info: MediaInfo, name: str, desired_name: str) -> AssetRecord:
        fields: Dict[str, Any] = {"title": file_name_to_title(desired_name)}
        fields.update(info.descriptive_fields())
        return AssetRecord(
            type=info.type,
            charset=info.charset,
            size=info.size,
            name=name,
            width=info.width,
            height=info.height,
            date_uploaded=utc_now(),
            storage_adapter=self.storage.adapter_name,
            **fields,
        )

    def _create_thumbnail(self, name: str, buffer: bytes) -> Optional[str]:
        _, extension = split_name(name)
        if not qualifies_for_thumbnail(extension):
            return None
        try:
            thumbnail = generate_thumbnail(
                buffer,
                extension,
                self.files_settings["thumbnail_size"],
                crop=self.files_settings["thumbnail_crop_enabled"],
                quality=self.files_settings["thumbnail_quality"],
            )
        except UnidentifiableMedia as exc:
            self.logger.warning("thumbnail_failed", name=name, error=str(exc))
            return None
        if thumbnail is None:
            self.logger.info("thumbnail_skipped", name=name)
            return None

        key = thumbnail_key(name)
        payload = {"name": name, "size": len(thumbnail)}
        try:
            self.hooks.notify(events.THUMBNAIL_SAVING, payload)
            self.storage.write(key, thumbnail)
            self.hooks.notify(events.THUMBNAIL_SAVED, payload)
        except StorageFault as exc:
            self.logger.warning("thumbnail_write_failed", name=name, key=key, error=str(exc))
            return None
        return key

    def _delete_key(self, key: str, name: str, before: str, after: str) -> bool:
        if not self.storage.exists(key):
            return False
        payload = {"name": name, "size": self.storage.stat(key).size_bytes}
        self.hooks.notify(before, payload)
        self.storage.delete(key)
        self.hooks.notify(after, payload)
        self.logger.info("asset_deleted", key=key)
        return True

    def _fallback_name(self) -> str:
        return md5(f"{self.clock():.0f}".encode("utf-8"), usedforsecurity=False).hexdigest()


__all__ = ["Files", "decode_inline_payload"]
