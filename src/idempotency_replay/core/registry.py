"""In-flight arbitration for concurrent duplicates.

Two requests with the same key can arrive before either has produced a
cached response. The InFlightRegistry decides which one executes:

    try_admit(key) -> ADMITTED (execute, then release)
                    | IN_FLIGHT (someone else is executing)
                    | CACHED    (replay this response)

Within a process the decision is a check-and-set on a marker table guarded
by a threading.Lock; nothing is awaited while the lock is held, so exactly
one of N concurrent callers is admitted and unrelated keys never wait on each
other's I/O. When the store is shared between processes, an admitted caller
must also win the store's conditional marker write, which extends the same
guarantee across processes.

The registry never waits or polls. What an IN_FLIGHT caller does next is
the interceptor's wait policy.

Examples:
    Guaranteed release::

        result = await registry.try_admit(key)
        if result.state == AdmissionState.ADMITTED:
            try:
                response = await handler(request)
            finally:
                await registry.release(key, result.token)
"""

import threading
import time
import uuid
from collections.abc import Callable

from idempotency_replay.config import IdempotencyConfig
from idempotency_replay.exceptions import StorageError
from idempotency_replay.models import (
    AdmissionResult,
    AdmissionState,
    CachedResponse,
    IdempotencyKey,
    InFlightMarker,
)
from idempotency_replay.observability.logging import get_logger
from idempotency_replay.observability.metrics import (
    decrement_in_flight,
    increment_in_flight,
    record_store_failure,
)
from idempotency_replay.storage.base import IdempotencyStore

logger = get_logger(__name__)


class InFlightRegistry:
    """Tracks keys that are executing and admits at most one caller per key.

    Attributes:
        store: Backing store, consulted for cached responses and, when
            shared, for cross-process markers
        config: Engine configuration
    """

    def __init__(
        self,
        store: IdempotencyStore,
        config: IdempotencyConfig,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.config = config
        self._clock = clock
        self._markers: dict[str, InFlightMarker] = {}
        self._lock = threading.Lock()

    def in_flight_count(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for marker in self._markers.values() if not marker.is_expired(now))

    def is_in_flight(self, key: IdempotencyKey) -> bool:
        with self._lock:
            marker = self._markers.get(key.storage_key)
            return marker is not None and not marker.is_expired(self._clock())

    async def lookup(self, key: IdempotencyKey) -> CachedResponse | None:
        """Fetch the cached response for ``key``; a failed read is a miss."""
        try:
            return await self.store.get(key.storage_key)
        except StorageError as e:
            record_store_failure("get")
            logger.warning(
                "store.get_failed",
                storage_key=key.storage_key,
                error=str(e),
                error_type=type(e.cause).__name__ if e.cause else type(e).__name__,
            )
            return None

    async def try_admit(self, key: IdempotencyKey) -> AdmissionResult:
        """Decide whether the caller executes, waits or replays.

        The store is read again once every marker is held, so a response
        written by an owner that finished while this caller was claiming is
        replayed instead of executed a second time.

        Args:
            key: The scoped idempotency key

        Returns:
            ADMITTED with an ownership token, IN_FLIGHT, or CACHED with the
            stored response.
        """
        cached = await self.lookup(key)
        if cached is not None:
            return AdmissionResult(state=AdmissionState.CACHED, response=cached)

        token = str(uuid.uuid4())
        if not self._claim_local(key.storage_key, token):
            return AdmissionResult(state=AdmissionState.IN_FLIGHT)

        try:
            if self.store.shared and not await self._claim_shared(key, token):
                self._drop_local(key.storage_key, token)
                cached = await self.lookup(key)
                if cached is not None:
                    return AdmissionResult(state=AdmissionState.CACHED, response=cached)
                return AdmissionResult(state=AdmissionState.IN_FLIGHT)

            # The previous owner may have stored and released before we got the marker
            cached = await self.lookup(key)
        except BaseException:
            self._drop_local(key.storage_key, token)
            raise

        if cached is not None:
            await self.release(key, token)
            return AdmissionResult(state=AdmissionState.CACHED, response=cached)

        logger.debug("registry.admitted", storage_key=key.storage_key)
        return AdmissionResult(state=AdmissionState.ADMITTED, token=token)

    async def release(self, key: IdempotencyKey, token: str) -> None:
        """Give up ownership of ``key``.

        Must be called on every exit path of an admitted execution. The local
        marker is dropped before anything is awaited, so even a cancelled
        release leaves no stale marker in this process.
        """
        self._drop_local(key.storage_key, token)

        if not (self.store.shared and self.store.supports_conditional_write):
            return

        try:
            await self.store.release_marker(key.marker_key, token)
        except StorageError as e:
            # The marker's own TTL bounds the lockout
            record_store_failure("release_marker")
            logger.warning("store.release_marker_failed", storage_key=key.storage_key, error=str(e))

    def _claim_local(self, storage_key: str, token: str) -> bool:
        with self._lock:
            now = self._clock()
            current = self._markers.get(storage_key)

            if current is not None and not current.is_expired(now):
                return False

            self._markers[storage_key] = InFlightMarker(
                token=token,
                expires_at=now + self.config.in_flight_timeout_seconds,
            )

        if current is None:
            increment_in_flight()
        else:
            logger.warning(
                "registry.marker_abandoned",
                storage_key=storage_key,
                timeout_seconds=self.config.in_flight_timeout_seconds,
            )
        return True

    def _drop_local(self, storage_key: str, token: str) -> bool:
        with self._lock:
            current = self._markers.get(storage_key)
            if current is None or current.token != token:
                return False
            del self._markers[storage_key]

        decrement_in_flight()
        return True

    async def _claim_shared(self, key: IdempotencyKey, token: str) -> bool:
        if not self.store.supports_conditional_write:
            # Accepted at startup with require_atomic_backend=False
            return True

        try:
            return await self.store.acquire_marker(
                key.marker_key,
                token,
                self.config.in_flight_timeout_seconds,
            )
        except StorageError as e:
            record_store_failure("acquire_marker")
            logger.warning(
                "store.acquire_marker_failed",
                storage_key=key.storage_key,
                error=str(e),
                message="Admitting without cross-process arbitration",
            )
            return True
