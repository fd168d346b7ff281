from __future__ import annotations

import logging
import sys
from typing import Any, Literal

import structlog

LogFormat = Literal["json", "console"]


def configure_logging(level: int = logging.INFO, *, log_format: LogFormat = "json", **context: Any) -> None:
    """Route pipeline events through structlog.

    ``json`` emits one JSON object per line; ``console`` is meant for an
    interactive terminal. Extra keyword arguments are bound as context
    variables and merged into every event.
    """
    logging.basicConfig(format="%(message)s", level=level, stream=sys.stderr)
    renderer = structlog.processors.JSONRenderer() if log_format == "json" else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.clear_contextvars()
    if context:
        structlog.contextvars.bind_contextvars(**context)


def level_from_name(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


def get_logger(**initial_values: Any) -> structlog.BoundLogger:
    return structlog.get_logger().bind(**initial_values)


__all__ = ["LogFormat", "configure_logging", "get_logger", "level_from_name"]
