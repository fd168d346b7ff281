"""Ingestion building blocks reused by the files service and the CLI."""

from mediaingest.ingest.metadata import MediaInfo, extract_metadata
from mediaingest.ingest.naming import NameResolver, file_name_to_title, sanitize_name
from mediaingest.ingest.remote import RemoteFetcher
from mediaingest.ingest.thumbnails import generate_thumbnail, thumbnail_key

__all__ = [
    "MediaInfo",
    "NameResolver",
    "RemoteFetcher",
    "extract_metadata",
    "file_name_to_title",
    "generate_thumbnail",
    "sanitize_name",
    "thumbnail_key",
]
