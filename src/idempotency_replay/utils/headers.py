"""Header utilities for the idempotency replay engine.

Headers travel through the engine as ordered lists of ``(name, value)``
pairs so repeated headers (``set-cookie``, ``link``...) and their order are
replayed exactly. This module provides:

- Case-insensitive lookup over such lists
- Removal of hop-by-hop and volatile headers before a response is captured
- Appending the replay marker header
"""

from collections.abc import Iterable

# Hop-by-hop and per-transmission headers; never part of a captured response
VOLATILE_HEADERS = {
    "date",
    "server",
    "connection",
    "transfer-encoding",
    "keep-alive",
    "trailer",
    "upgrade",
    "proxy-connection",
    "proxy-authenticate",
    "proxy-authorization",
}


def get_header_value(
    headers: Iterable[tuple[str, str]],
    header_name: str,
    default: str | None = None,
) -> str | None:
    """Return the first value of a header, matching the name case-insensitively.

    Args:
        headers: Ordered header pairs
        header_name: Name of header to find (case-insensitive)
        default: Value returned when the header is absent

    Example:
        >>> get_header_value([("X-Idempotency-Key", "abc")], "x-idempotency-key")
        'abc'
        >>> get_header_value([], "missing", "default")
        'default'
    """
    wanted = header_name.lower()

    for name, value in headers:
        if name.lower() == wanted:
            return value

    return default


def filter_volatile_headers(
    headers: Iterable[tuple[str, str]],
    additional_volatile: Iterable[str] | None = None,
) -> list[tuple[str, str]]:
    """Drop volatile headers, keeping the order of everything else.

    Args:
        headers: Original response headers
        additional_volatile: Additional header names to remove (case-insensitive)

    Example:
        >>> filter_volatile_headers([("Content-Type", "text/plain"), ("Date", "Mon")])
        [('Content-Type', 'text/plain')]
    """
    to_remove = set(VOLATILE_HEADERS)
    if additional_volatile:
        to_remove.update(name.lower() for name in additional_volatile)

    return [(name, value) for name, value in headers if name.lower() not in to_remove]


def add_replay_header(
    headers: Iterable[tuple[str, str]],
    replay_header: str,
) -> list[tuple[str, str]]:
    """Append the replay marker to a copy of ``headers``.

    An empty ``replay_header`` leaves the headers unchanged.

    Example:
        >>> add_replay_header([("content-type", "application/json")], "X-Idempotency-Replayed")
        [('content-type', 'application/json'), ('X-Idempotency-Replayed', 'true')]
    """
    result = list(headers)

    if replay_header:
        result.append((replay_header, "true"))

    return result
