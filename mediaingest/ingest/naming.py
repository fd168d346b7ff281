from __future__ import annotations

import re
import time
from hashlib import md5
from pathlib import PurePosixPath
from typing import Callable, Literal, Tuple

from mediaingest.core.errors import NameResolutionExhausted
from mediaingest.core.storage import Storage

__all__ = [
    "NameResolver",
    "file_name_to_title",
    "hash_file_name",
    "sanitize_name",
    "split_name",
]

NamingStrategy = Literal["original", "hash"]

_TRAILING_SUFFIX = re.compile(r"-(\d+)$")
_WORD_SEPARATORS = re.compile(r"[-_\s]+")


def split_name(file_name: str) -> Tuple[str, str]:
    """Split ``file_name`` into stem and extension (without the dot).

    A name made only of a leading dot and letters, such as ``.env``, has no
    extension.
    """
    path = PurePosixPath(file_name)
    suffix = path.suffix
    if not suffix:
        return path.name, ""
    return path.name[: -len(suffix)], suffix[1:]


def join_name(stem: str, extension: str) -> str:
    return f"{stem}.{extension}" if extension else stem


def sanitize_name(file_name: str) -> str:
    """Make a name safe to use as a storage key.

    Directory components are dropped, a leading dot becomes ``dot-`` and
    spaces become underscores.
    """
    name = PurePosixPath(file_name.replace("\\", "/")).name
    if name.startswith("."):
        name = "dot-" + name[1:]
    return name.replace(" ", "_")


def hash_file_name(file_name: str, *, clock: Callable[[], float] = time.time) -> str:
    _, extension = split_name(file_name)
    digest = md5(f"{clock():.6f}{file_name}".encode("utf-8"), usedforsecurity=False).hexdigest()
    return join_name(digest, extension)


def file_name_to_title(file_name: str) -> str:
    """Turn ``my-holiday_photo.jpg`` into ``My Holiday Photo``."""
    stem, _ = split_name(PurePosixPath(file_name).name)
    words = [word for word in _WORD_SEPARATORS.split(stem) if word]
    return " ".join(word[:1].upper() + word[1:] for word in words)


class NameResolver:
    """Pick a storage key for an incoming file that no stored asset uses yet.

    The check-then-write sequence is not atomic: two concurrent ingestions
    can resolve the same name. Callers that ingest in parallel should
    serialise on the desired name.
    """

    def __init__(
        self,
        storage: Storage,
        *,
        naming: NamingStrategy = "original",
        max_attempts: int = 10_000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.storage = storage
        self.naming = naming
        self.max_attempts = max_attempts
        self.clock = clock

    def resolve(self, desired_name: str) -> str:
        name = sanitize_name(desired_name)
        if self.naming == "hash":
            name = hash_file_name(name, clock=self.clock)

        stem, extension = split_name(name)
        candidate = join_name(stem, extension)
        attempts = 0
        while self.storage.exists(candidate):
            attempts += 1
            if attempts > self.max_attempts:
                raise NameResolutionExhausted(desired_name, self.max_attempts)
            stem = _next_stem(stem)
            candidate = join_name(stem, extension)
        return candidate


def _next_stem(stem: str) -> str:
    # "photo-9" -> "photo-10"; "photo" -> "photo-1"
    match = _TRAILING_SUFFIX.search(stem)
    if match:
        return f"{stem[: match.start()]}-{int(match.group(1)) + 1}"
    return f"{stem}-1"
