"""Capture and replay of responses.

Capture turns a downstream response into an immutable CachedResponse after
dropping hop-by-hop and volatile headers; replay turns it back into a
ReplayedResponse with the stored status, headers (same order, duplicates
kept) and body bytes, plus the optional replay marker header.

Examples:
    Round trip::

        cached = capture_response(ReplayedResponse(201, headers, b'{"id": "o1"}'))
        replayed = replay_response(cached, replay_header="X-Idempotency-Replayed")
        # replayed.status == 201
        # replayed.headers[-1] == ("X-Idempotency-Replayed", "true")
"""

from idempotency_replay.models import CachedResponse
from idempotency_replay.utils.headers import add_replay_header, filter_volatile_headers


class ReplayedResponse:
    """A response as seen by the engine, fresh or replayed.

    Attributes:
        status: HTTP status code (e.g., 200, 409, 500)
        headers: Ordered header pairs, duplicates allowed
        body: Response body as bytes
    """

    def __init__(self, status: int, headers: list[tuple[str, str]], body: bytes) -> None:
        self.status = status
        self.headers = headers
        self.body = body

    def __repr__(self) -> str:
        return f"ReplayedResponse(status={self.status}, headers={len(self.headers)}, body={len(self.body)}B)"


def capture_response(response: ReplayedResponse) -> CachedResponse:
    """Snapshot a downstream response for future replay.

    Args:
        response: The response produced by the downstream handler

    Returns:
        CachedResponse holding the status, the non-volatile headers and the body
    """
    return CachedResponse.capture(
        status_code=response.status,
        headers=filter_volatile_headers(response.headers),
        body=response.body,
    )


def replay_response(cached: CachedResponse, replay_header: str = "") -> ReplayedResponse:
    """Rebuild the response stored in ``cached``.

    Args:
        cached: The stored snapshot
        replay_header: Marker header to append; empty appends nothing

    Returns:
        ReplayedResponse with the stored status, headers and body
    """
    return ReplayedResponse(
        status=cached.status_code,
        headers=add_replay_header(cached.headers, replay_header),
        body=cached.body,
    )
