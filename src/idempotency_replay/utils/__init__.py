"""Utility modules for the idempotency replay engine."""

from .headers import (
    VOLATILE_HEADERS,
    add_replay_header,
    filter_volatile_headers,
    get_header_value,
)

__all__ = [
    "get_header_value",
    "filter_volatile_headers",
    "add_replay_header",
    "VOLATILE_HEADERS",
]
