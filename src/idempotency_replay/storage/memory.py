"""Bounded in-memory store.

This module provides a process-local implementation of the IdempotencyStore
protocol backed by an ordered dictionary with least-recently-used eviction.

The MemoryIdempotencyStore is suitable for:
    - Single-process applications
    - Development and testing

For several processes serving the same clients, use RedisIdempotencyStore.

Thread Safety:
    - One threading.Lock guards entries and markers
    - Critical sections never await, so the lock is held only for a few
      dictionary operations and unrelated keys do not wait on each other's I/O
    - Safe to share between event loops running in different threads

Expiry:
    - Deadlines are computed from an injectable monotonic clock
    - Expired entries are dropped lazily on access and in bulk by
      cleanup_expired()

Examples:
    Basic usage::

        store = MemoryIdempotencyStore(max_entries=1000)
        await store.put("idempotency:http:abc", cached, ttl_seconds=86400)
        await store.get("idempotency:http:abc")  # -> cached

    Deterministic expiry in tests::

        now = [0.0]
        store = MemoryIdempotencyStore(clock=lambda: now[0])
        await store.put("k", cached, ttl_seconds=10)
        now[0] = 10.5
        await store.get("k")  # -> None
"""

import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import NamedTuple

from idempotency_replay.models import CachedResponse, InFlightMarker
from idempotency_replay.observability.logging import get_logger
from idempotency_replay.storage.base import IdempotencyStore

logger = get_logger(__name__)


class _Entry(NamedTuple):
    response: CachedResponse
    expires_at: float


class MemoryIdempotencyStore(IdempotencyStore):
    """In-memory store with LRU eviction and per-entry TTL.

    Attributes:
        shared: Always False; entries are visible to this process only.
        supports_conditional_write: Always True; conditional writes run
            under the store lock.
        max_entries: Capacity before the least recently used entry is evicted.
    """

    shared = False
    supports_conditional_write = True

    def __init__(
        self,
        max_entries: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize an empty store.

        Args:
            max_entries: Maximum number of live entries kept.
            clock: Monotonic time source in seconds.

        Raises:
            ValueError: If max_entries is not positive.
        """
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")

        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._markers: dict[str, InFlightMarker] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _live_entry(self, key: str, now: float) -> _Entry | None:
        # Caller holds self._lock
        entry = self._entries.get(key)
        if entry is None:
            return None

        if now >= entry.expires_at:
            del self._entries[key]
            return None

        self._entries.move_to_end(key)
        return entry

    def _insert(self, key: str, response: CachedResponse, ttl_seconds: float, now: float) -> None:
        # Caller holds self._lock
        self._entries[key] = _Entry(response=response, expires_at=now + ttl_seconds)
        self._entries.move_to_end(key)

        while len(self._entries) > self.max_entries:
            evicted_key, _ = self._entries.popitem(last=False)
            logger.debug("store.evicted", storage_key=evicted_key, max_entries=self.max_entries)

    async def get(self, key: str) -> CachedResponse | None:
        with self._lock:
            entry = self._live_entry(key, self._clock())
            return entry.response if entry is not None else None

    async def put(self, key: str, response: CachedResponse, ttl_seconds: float) -> bool:
        with self._lock:
            self._insert(key, response, ttl_seconds, self._clock())
        return True

    async def put_if_absent(self, key: str, response: CachedResponse, ttl_seconds: float) -> bool:
        with self._lock:
            now = self._clock()
            if self._live_entry(key, now) is not None:
                return False
            self._insert(key, response, ttl_seconds, now)
        return True

    async def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    async def clear(self, prefix: str) -> int:
        with self._lock:
            doomed = [key for key in self._entries if key.startswith(prefix)]
            for key in doomed:
                del self._entries[key]

            for key in [key for key in self._markers if key.startswith(prefix)]:
                del self._markers[key]

        return len(doomed)

    async def acquire_marker(self, key: str, token: str, ttl_seconds: float) -> bool:
        with self._lock:
            now = self._clock()
            current = self._markers.get(key)
            if current is not None and not current.is_expired(now):
                return False

            self._markers[key] = InFlightMarker(token=token, expires_at=now + ttl_seconds)
            return True

    async def release_marker(self, key: str, token: str) -> bool:
        with self._lock:
            current = self._markers.get(key)
            if current is None or current.token != token:
                return False

            del self._markers[key]
            return True

    async def cleanup_expired(self) -> int:
        """Remove expired entries and markers.

        Returns:
            The number of cached entries removed (markers are not counted).
        """
        with self._lock:
            now = self._clock()

            expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
            for key in expired:
                del self._entries[key]

            stale = [key for key, marker in self._markers.items() if marker.is_expired(now)]
            for key in stale:
                del self._markers[key]

        return len(expired)
