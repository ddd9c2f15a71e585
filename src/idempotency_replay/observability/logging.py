"""structlog setup shared by every component of the engine.

Event names are dotted (``idempotency.replayed``, ``store.put_failed``,
``cleanup.completed``) and carry key/value context such as ``storage_key``,
``status_code`` and ``operation``, so one key can be followed from admission
to release across log lines.

Examples:
    Once at process start::

        configure_logging(level="INFO", json_output=True)

    A replayed response then logs as::

        {"storage_key": "idempotency:http:ab12", "status_code": 201,
         "event": "idempotency.replayed", "level": "info",
         "timestamp": "2026-01-05T09:30:00.000000Z"}
"""

import logging
import sys
from typing import Any

import structlog

_SHARED_PROCESSORS: list[Any] = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
]


def configure_logging(level: str = "INFO", json_output: bool = True) -> None:
    """Route engine events to stdout.

    Args:
        level: Minimum level name, e.g. "DEBUG" to see cleanup sweeps that
            removed nothing.
        json_output: One JSON object per line when True, coloured console
            output for local runs when False.
    """
    threshold = logging.getLevelName(level.upper())
    if not isinstance(threshold, int):
        raise ValueError(f"unknown log level: {level}")

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=threshold)

    renderer: Any = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[*_SHARED_PROCESSORS, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(threshold),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """Return a structlog logger; modules pass ``__name__``."""
    return structlog.get_logger(name)
