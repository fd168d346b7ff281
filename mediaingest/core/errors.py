"""Typed failures raised by the ingestion pipeline."""

from __future__ import annotations


class MediaIngestError(Exception):
    """Base class for every failure the pipeline surfaces to callers."""


class SourceUnavailable(MediaIngestError):
    """Raised when a temporary upload or a remote resource cannot be read."""

    def __init__(self, source: str, reason: str | None = None) -> None:
        self.source = source
        self.reason = reason
        message = f"Source unavailable: {source}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class UnidentifiableMedia(MediaIngestError):
    """Raised when content type detection or image decoding fails."""


class ProviderIdentifierMissing(MediaIngestError):
    """Raised when a recognised provider URL carries no video identifier."""

    def __init__(self, provider: str, url: str) -> None:
        self.provider = provider
        self.url = url
        super().__init__(f"{provider} video ID not detected")


class ProviderCredentialInvalid(MediaIngestError):
    """Raised when a provider API rejects the configured key."""

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"Bad {provider} API key")


class ProviderUnavailable(MediaIngestError):
    """Provider API or network failure that is not a credential problem.

    Never escapes the remote fetcher: callers see a record with generic
    values instead.
    """

    def __init__(self, provider: str, reason: str) -> None:
        self.provider = provider
        self.reason = reason
        super().__init__(f"{provider} unavailable: {reason}")


class StorageFault(MediaIngestError):
    """Raised when the storage adapter fails to check, read, write or delete a key."""

    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        self.reason = reason
        super().__init__(f"Storage fault on {key!r}: {reason}")


class StorageNotFound(StorageFault):
    """Raised when a key expected to exist is missing from the adapter."""

    def __init__(self, key: str) -> None:
        super().__init__(key, "not found")


class NameResolutionExhausted(MediaIngestError):
    """Raised when no free name is found within the attempt cap."""

    def __init__(self, desired_name: str, attempts: int) -> None:
        self.desired_name = desired_name
        self.attempts = attempts
        super().__init__(f"No free name for {desired_name!r} after {attempts} attempts")


__all__ = [
    "MediaIngestError",
    "SourceUnavailable",
    "UnidentifiableMedia",
    "ProviderIdentifierMissing",
    "ProviderCredentialInvalid",
    "ProviderUnavailable",
    "StorageFault",
    "StorageNotFound",
    "NameResolutionExhausted",
]
