"""Custom exceptions for the idempotency replay engine.

Storage adapters translate backend-specific failures into these types so the
interceptor only ever has to reason about one hierarchy. Handler exceptions
are never wrapped: they propagate to the caller unchanged.

Examples:
    Failing open on a storage error::

        from idempotency_replay.exceptions import StorageError

        try:
            cached = await store.get(key)
        except StorageError as e:
            logger.warning("store.get_failed", error=str(e))
            # Treat as a cache miss
            cached = None

    Rejecting a backend that cannot arbitrate across processes::

        from idempotency_replay.exceptions import BackendCapabilityError

        try:
            interceptor = IdempotencyInterceptor(store, config)
        except BackendCapabilityError as e:
            raise SystemExit(str(e))
"""


class IdempotencyError(Exception):
    """Base exception for all idempotency-related errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class StorageError(IdempotencyError):
    """Storage backend operation failed.

    Raised by store adapters for network failures, unavailable backends and
    unreadable entries. The interceptor never surfaces this to clients: a
    failed read is a cache miss and a failed write only loses the replay.

    Attributes:
        message: Human-readable error description.
        operation: The store operation that failed (``get``, ``put``, ...).
        cause: The underlying exception, if any.

    Examples:
        Raising a storage error from an adapter::

            try:
                raw = await self._client.get(key)
            except RedisError as e:
                raise StorageError(
                    message=f"Failed to read {key} from Redis: {e}",
                    operation="get",
                    cause=e,
                ) from e
    """

    def __init__(
        self,
        message: str,
        operation: str = "unknown",
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.cause = cause


class BackendCapabilityError(IdempotencyError):
    """The configured backend cannot provide the required guarantees.

    Raised at startup when a store shared between processes has no atomic
    conditional write, which would silently turn exactly-once execution into
    last-write-wins.

    Attributes:
        message: Human-readable error description.
        backend: Class name of the offending store.
    """

    def __init__(self, message: str, backend: str) -> None:
        super().__init__(message)
        self.backend = backend
