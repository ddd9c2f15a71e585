"""Core type definitions for the idempotency replay engine.

This module provides the data structures shared by the key policy, the
in-flight registry, the interceptor and the store adapters: cached response
snapshots, scoped idempotency keys, admission results and error payloads.

Examples:
    Capturing a completed response::

        from idempotency_replay.models import CachedResponse

        cached = CachedResponse.capture(
            status_code=201,
            headers=[("content-type", "application/json")],
            body=b'{"id": "o1"}',
        )
        cached.body  # b'{"id": "o1"}'

    Scoping a client key::

        from idempotency_replay.models import IdempotencyKey

        key = IdempotencyKey(namespace="idempotency:http", raw_key="abc123")
        key.storage_key  # 'idempotency:http:abc123'
"""

import base64
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

# Appended to the key namespace to form the in-flight marker namespace
MARKER_SUFFIX = ".inflight"

HeaderList = tuple[tuple[str, str], ...]


class CachedResponse(BaseModel):
    """An immutable snapshot of a completed HTTP response.

    The body is base64-encoded so the snapshot serialises to the same JSON
    text on every backend, binary payloads included. Headers are kept as an
    ordered sequence of ``(name, value)`` pairs so repeated headers and their
    order survive replay.

    Attributes:
        status_code: HTTP status code of the original response.
        headers: Ordered header pairs, duplicates allowed.
        body_b64: Base64-encoded response body.
        created_at: When the first execution for the key completed.

    Examples:
        >>> cached = CachedResponse.capture(200, [("content-type", "text/plain")], b"ok")
        >>> cached.status_code
        200
        >>> cached.body
        b'ok'
    """

    status_code: int = Field(
        ...,
        description="HTTP status code",
        ge=100,
        le=599,
        examples=[200, 201, 409],
    )
    headers: HeaderList = Field(
        default=(),
        description="Ordered response headers as (name, value) pairs",
    )
    body_b64: str = Field(
        default="",
        description="Base64-encoded response body",
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Timestamp when the response was captured",
    )

    model_config = {"frozen": True}

    @field_validator("body_b64")
    @classmethod
    def validate_base64(cls, v: str) -> str:
        """Reject bodies that are not valid base64.

        Raises:
            ValueError: If the string is not valid base64.
        """
        try:
            base64.b64decode(v, validate=True)
        except Exception as e:
            raise ValueError(f"Invalid base64 encoding: {e}") from e
        return v

    @classmethod
    def capture(
        cls,
        status_code: int,
        headers: list[tuple[str, str]] | HeaderList,
        body: bytes,
    ) -> "CachedResponse":
        """Snapshot a response produced by the downstream handler.

        Args:
            status_code: HTTP status code.
            headers: Ordered header pairs.
            body: Raw response body.

        Returns:
            A new, immutable CachedResponse.
        """
        return cls(
            status_code=status_code,
            headers=tuple((name, value) for name, value in headers),
            body_b64=base64.b64encode(body).decode("ascii"),
        )

    @property
    def body(self) -> bytes:
        """Decoded response body."""
        return base64.b64decode(self.body_b64)

    def to_json(self) -> str:
        """Serialise for networked backends."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str | bytes) -> "CachedResponse":
        """Rebuild a snapshot written by :meth:`to_json`."""
        return cls.model_validate_json(data)


class IdempotencyKey(BaseModel):
    """A client-supplied key scoped to a namespace.

    Two requests carrying the same raw key in the same namespace are the same
    logical operation. The namespace keeps this subsystem's entries apart from
    unrelated users of a shared backend.

    Attributes:
        namespace: Prefix identifying the owning subsystem.
        raw_key: The header value sent by the client, whitespace-stripped.
    """

    namespace: str = Field(..., min_length=1)
    raw_key: str = Field(..., min_length=1)

    model_config = {"frozen": True}

    @property
    def storage_key(self) -> str:
        """Key used against the backing store."""
        return f"{self.namespace}:{self.raw_key}"

    @property
    def marker_key(self) -> str:
        """Key of the in-flight marker in a shared backend.

        Storage keys all start with ``"{namespace}:"``; markers live under
        ``"{namespace}.inflight:"`` so no client key can name one.
        """
        return f"{self.namespace}{MARKER_SUFFIX}:{self.raw_key}"


class AdmissionState(str, Enum):
    """Outcome of trying to admit a request for execution.

    Attributes:
        ADMITTED: The caller owns the key and must execute, then release.
        IN_FLIGHT: Another request is executing under the same key.
        CACHED: A completed response exists and must be replayed.
    """

    ADMITTED = "ADMITTED"
    IN_FLIGHT = "IN_FLIGHT"
    CACHED = "CACHED"


class AdmissionResult(BaseModel):
    """Result of :meth:`InFlightRegistry.try_admit`.

    Attributes:
        state: Admission outcome.
        token: Ownership token, present only when ADMITTED.
        response: Cached response, present only when CACHED.

    Examples:
        >>> AdmissionResult(state=AdmissionState.ADMITTED, token="t-1").token
        't-1'
    """

    state: AdmissionState
    token: str | None = None
    response: CachedResponse | None = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_state_payload(self) -> "AdmissionResult":
        """Enforce that token and response match the state.

        Raises:
            ValueError: If the payload does not match the state.
        """
        if (self.state == AdmissionState.ADMITTED) != (self.token is not None):
            raise ValueError("token must be provided if and only if state is ADMITTED")
        if (self.state == AdmissionState.CACHED) != (self.response is not None):
            raise ValueError("response must be provided if and only if state is CACHED")
        return self


class InFlightMarker(BaseModel):
    """A key that is being executed but has no cached response yet.

    Attributes:
        token: Ownership token handed to the admitted request.
        expires_at: Monotonic deadline after which the marker is abandoned.
    """

    token: str
    expires_at: float

    model_config = {"frozen": True}

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class ErrorResponse(BaseModel):
    """Structured error payload served by the interceptor and error cache.

    Holds no timestamps or request identifiers so equal errors render to
    equal bytes and can be shared between requests.

    Attributes:
        code: Machine-readable error code.
        status: HTTP status code.
        error: HTTP reason phrase.
        message: Human-readable explanation.
        path: Request path the error applies to.
        details: Optional extra explanation.
        retryable: Whether retrying later may succeed.
        retry_after: Suggested delay in seconds before retrying.
    """

    code: str = Field(..., min_length=1)
    status: int = Field(..., ge=400, le=599)
    error: str
    message: str
    path: str = ""
    details: str | None = None
    retryable: bool = False
    retry_after: int | None = Field(default=None, ge=0)

    model_config = {"frozen": True}

    def render(self) -> bytes:
        """Render as compact JSON bytes."""
        return self.model_dump_json(exclude_none=True).encode("utf-8")

    def to_cached_response(self) -> CachedResponse:
        """Render into a replayable response snapshot."""
        headers = [("content-type", "application/json")]
        if self.retry_after is not None:
            headers.append(("retry-after", str(self.retry_after)))
        return CachedResponse.capture(self.status, headers, self.render())
