from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable, Mapping

from .logging import get_logger

Listener = Callable[[str, Mapping[str, Any]], None]

SAVING = "files.saving"
SAVED = "files.saving:after"
DELETING = "files.deleting"
DELETED = "files.deleting:after"
THUMBNAIL_SAVING = "files.thumbnail.saving"
THUMBNAIL_SAVED = "files.thumbnail.saving:after"
THUMBNAIL_DELETING = "files.thumbnail.deleting"
THUMBNAIL_DELETED = "files.thumbnail.deleting:after"

WILDCARD = "*"


class Hooks:
    """Explicit listener registry for storage lifecycle notifications.

    Listeners are called synchronously in registration order. A listener
    that raises is logged and skipped; it never changes the outcome of the
    storage operation it observes.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)
        self.logger = get_logger(component="hooks")

    def subscribe(self, event: str, listener: Listener) -> None:
        self._listeners[event].append(listener)

    def unsubscribe(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def notify(self, event: str, payload: Mapping[str, Any]) -> None:
        for listener in [*self._listeners.get(event, []), *self._listeners.get(WILDCARD, [])]:
            try:
                listener(event, payload)
            except Exception:
                self.logger.exception("hook_listener_failed", hook_event=event, listener=repr(listener))


__all__ = [
    "Hooks",
    "Listener",
    "SAVING",
    "SAVED",
    "DELETING",
    "DELETED",
    "THUMBNAIL_SAVING",
    "THUMBNAIL_SAVED",
    "THUMBNAIL_DELETING",
    "THUMBNAIL_DELETED",
    "WILDCARD",
]
