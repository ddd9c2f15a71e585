"""Caching of rendered error payloads.

During a failure storm (a dependency outage, say) the same error is produced
thousands of times per second for the same path. ErrorResponseCache keeps
the rendered payload under a key derived from (error code, status, path) so
it is built once per TTL instead of once per request.

Unlike idempotency entries, duplicate computation of an error body is only
wasteful, not unsafe, so there is no in-flight arbitration: a plain
get / build / put with the same fail-open policy as the rest of the engine.

Examples:
    Building through the cache::

        cache = ErrorResponseCache(store, IdempotencyConfig(error_cache_enabled=True))

        def build() -> ErrorResponse:
            return ErrorResponse(
                code="PAYMENTS_UNAVAILABLE",
                status=503,
                error="Service Unavailable",
                message="Payment provider is not responding",
                path="/orders",
                retryable=True,
                retry_after=5,
            )

        cached = await cache.get_or_build("PAYMENTS_UNAVAILABLE", 503, "/orders", build)
"""

import inspect
import threading
from collections.abc import Awaitable, Callable

from pydantic import BaseModel

from idempotency_replay.config import IdempotencyConfig
from idempotency_replay.exceptions import StorageError
from idempotency_replay.models import CachedResponse, ErrorResponse
from idempotency_replay.observability.logging import get_logger
from idempotency_replay.observability.metrics import record_error_cache_lookup, record_store_failure
from idempotency_replay.storage.base import IdempotencyStore

logger = get_logger(__name__)

ErrorBuilder = Callable[[], ErrorResponse | Awaitable[ErrorResponse]]


class CacheStats(BaseModel):
    """Hit/miss counters since creation or the last clear().

    Examples:
        >>> CacheStats(hits=3, misses=1).hit_rate
        0.75
    """

    hits: int
    misses: int

    model_config = {"frozen": True}

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class ErrorResponseCache:
    """Stores rendered ErrorResponse payloads keyed by code, status and path.

    Attributes:
        store: Backing store, usually the same one used for idempotency entries
        config: Engine configuration (``error_cache_*`` and ``error_namespace``)
        enabled: When False every lookup misses and nothing is stored
    """

    def __init__(self, store: IdempotencyStore, config: IdempotencyConfig) -> None:
        self.store = store
        self.config = config
        self.enabled = config.error_cache_enabled
        self._hits = 0
        self._misses = 0
        self._stats_lock = threading.Lock()

        logger.info(
            "error_cache.initialized",
            enabled=self.enabled,
            ttl_seconds=config.error_cache_ttl_seconds,
            namespace=config.error_namespace,
        )

    def build_key(self, code: str, status: int, path: str | None) -> str:
        return f"{self.config.error_namespace}:{code}:{status}:{path or ''}"

    async def get(self, code: str, status: int, path: str | None) -> CachedResponse | None:
        """Return the cached payload, or None on a miss or store failure."""
        if not self.enabled:
            return None

        cache_key = self.build_key(code, status, path)
        try:
            cached = await self.store.get(cache_key)
        except StorageError as e:
            record_store_failure("get")
            logger.warning("error_cache.get_failed", cache_key=cache_key, error=str(e))
            cached = None

        self._count(hit=cached is not None)
        return cached

    async def put(self, error: ErrorResponse) -> CachedResponse:
        """Render ``error`` and store it.

        Returns:
            The rendered payload, whether or not it could be stored.
        """
        rendered = error.to_cached_response()
        if self.enabled:
            await self._store(self.build_key(error.code, error.status, error.path), rendered)
        return rendered

    async def get_or_build(
        self,
        code: str,
        status: int,
        path: str | None,
        build: ErrorBuilder,
    ) -> CachedResponse:
        """Return the cached payload, building and storing it on a miss.

        Args:
            code: Error code
            status: HTTP status code
            path: Request path
            build: Sync or async callable producing the ErrorResponse

        Returns:
            The rendered error payload
        """
        cached = await self.get(code, status, path)
        if cached is not None:
            return cached

        error = build()
        if inspect.isawaitable(error):
            error = await error

        rendered = error.to_cached_response()
        if self.enabled:
            await self._store(self.build_key(code, status, path), rendered)
        return rendered

    async def invalidate(self, code: str, status: int, path: str | None) -> bool:
        cache_key = self.build_key(code, status, path)
        try:
            return await self.store.delete(cache_key)
        except StorageError as e:
            record_store_failure("delete")
            logger.warning("error_cache.invalidate_failed", cache_key=cache_key, error=str(e))
            return False

    async def clear(self) -> int:
        """Drop every cached error payload and reset the statistics."""
        try:
            removed = await self.store.clear(f"{self.config.error_namespace}:")
        except StorageError as e:
            record_store_failure("clear")
            logger.warning("error_cache.clear_failed", error=str(e))
            return 0

        with self._stats_lock:
            self._hits = 0
            self._misses = 0

        logger.info("error_cache.cleared", entries_removed=removed)
        return removed

    def stats(self) -> CacheStats:
        with self._stats_lock:
            return CacheStats(hits=self._hits, misses=self._misses)

    async def _store(self, cache_key: str, rendered: CachedResponse) -> None:
        try:
            await self.store.put(cache_key, rendered, self.config.error_cache_ttl_seconds)
        except StorageError as e:
            record_store_failure("put")
            logger.warning("error_cache.put_failed", cache_key=cache_key, error=str(e))

    def _count(self, hit: bool) -> None:
        with self._stats_lock:
            if hit:
                self._hits += 1
            else:
                self._misses += 1
        record_error_cache_lookup(hit)
