from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Iterable

from .config import Settings
from .errors import StorageFault, StorageNotFound


@dataclass(slots=True)
class StorageStat:
    size_bytes: int | None


class Storage(ABC):
    """Key-addressable blob store the ingestion pipeline writes into."""

    adapter_name: str = "abstract"

    @abstractmethod
    def exists(self, key: str) -> bool: ...

    @abstractmethod
    def stat(self, key: str) -> StorageStat: ...

    @abstractmethod
    def read(self, key: str) -> bytes: ...

    @abstractmethod
    def write(self, key: str, payload: bytes) -> None: ...

    @abstractmethod
    def delete(self, key: str) -> None: ...

    @abstractmethod
    def rename(self, key: str, new_key: str) -> None: ...

    @abstractmethod
    def list(self, prefix: str = "") -> Iterable[str]: ...

    @abstractmethod
    def root_path(self) -> str: ...


class LocalStorage(Storage):
    """Filesystem-backed storage rooted at a single directory."""

    adapter_name = "local"

    def __init__(self, base_path: Path):
        self.base_path = Path(base_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _resolve(self, key: str) -> Path:
        relative = PurePosixPath(key)
        if relative.is_absolute() or ".." in relative.parts or not relative.parts:
            raise StorageFault(key, "key escapes the storage root")
        return self.base_path.joinpath(*relative.parts)

    def exists(self, key: str) -> bool:
        try:
            return self._resolve(key).is_file()
        except OSError as exc:
            raise StorageFault(key, str(exc)) from exc

    def stat(self, key: str) -> StorageStat:
        path = self._resolve(key)
        try:
            return StorageStat(size_bytes=path.stat().st_size)
        except FileNotFoundError as exc:
            raise StorageNotFound(key) from exc
        except OSError as exc:
            raise StorageFault(key, str(exc)) from exc

    def read(self, key: str) -> bytes:
        path = self._resolve(key)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise StorageNotFound(key) from exc
        except OSError as exc:
            raise StorageFault(key, str(exc)) from exc

    def write(self, key: str, payload: bytes) -> None:
        path = self._resolve(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(payload)
        except OSError as exc:
            raise StorageFault(key, str(exc)) from exc

    def delete(self, key: str) -> None:
        path = self._resolve(key)
        try:
            path.unlink()
        except FileNotFoundError as exc:
            raise StorageNotFound(key) from exc
        except OSError as exc:
            raise StorageFault(key, str(exc)) from exc

    def rename(self, key: str, new_key: str) -> None:
        source = self._resolve(key)
        target = self._resolve(new_key)
        if not source.is_file():
            raise StorageNotFound(key)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            source.rename(target)
        except OSError as exc:
            raise StorageFault(key, str(exc)) from exc

    def list(self, prefix: str = "") -> Iterable[str]:
        base = self._resolve(prefix) if prefix else self.base_path
        if not base.exists():
            return []
        if base.is_file():
            return [prefix]
        return sorted(p.relative_to(self.base_path).as_posix() for p in base.rglob("*") if p.is_file())

    def root_path(self) -> str:
        return str(self.base_path)


class MemoryStorage(Storage):
    """Dictionary-backed storage, handy for tests and dry runs."""

    adapter_name = "memory"

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}

    def exists(self, key: str) -> bool:
        return key in self._blobs

    def stat(self, key: str) -> StorageStat:
        return StorageStat(size_bytes=len(self.read(key)))

    def read(self, key: str) -> bytes:
        try:
            return self._blobs[key]
        except KeyError as exc:
            raise StorageNotFound(key) from exc

    def write(self, key: str, payload: bytes) -> None:
        self._blobs[key] = bytes(payload)

    def delete(self, key: str) -> None:
        if self._blobs.pop(key, None) is None:
            raise StorageNotFound(key)

    def rename(self, key: str, new_key: str) -> None:
        try:
            self._blobs[new_key] = self._blobs.pop(key)
        except KeyError as exc:
            raise StorageNotFound(key) from exc

    def list(self, prefix: str = "") -> Iterable[str]:
        return sorted(key for key in self._blobs if key.startswith(prefix))

    def root_path(self) -> str:
        return "memory://"


def get_storage(settings: Settings) -> Storage:
    if settings.storage_backend == "local":
        return LocalStorage(base_path=settings.storage_root)
    if settings.storage_backend == "memory":
        return MemoryStorage()
    raise ValueError(f"Unsupported storage backend: {settings.storage_backend}")


__all__ = [
    "Storage",
    "LocalStorage",
    "MemoryStorage",
    "StorageStat",
    "get_storage",
]
