"""Storage port for the idempotency replay engine.

Every backend (bounded in-process map, Redis, ...) implements the
IdempotencyStore protocol. The engine depends on nothing else, and the
adapter is chosen once at startup.

Examples:
    Implementing a custom store::

        class MyStore:
            shared = True
            supports_conditional_write = True

            async def get(self, key: str) -> CachedResponse | None:
                data = await self.backend.get(key)
                return None if data is None else CachedResponse.from_json(data)

            async def put_if_absent(self, key, response, ttl_seconds) -> bool:
                # Must be a single atomic compare-and-set on the backend
                return await self.backend.set(key, response.to_json(), nx=True, ex=ttl_seconds)

            ...

Consistency Requirements:
    All IdempotencyStore implementations MUST guarantee:

    1. **Read-your-writes per key**: a get() issued after a successful put()
       for the same key observes the stored value until it expires.

    2. **Whole entries only**: a reader sees either no entry or a complete
       CachedResponse, never a partially written one.

    3. **Expiry**: entries past their TTL are misses for get() and do not
       block put_if_absent().

    4. **Atomic conditional writes**: when ``supports_conditional_write`` is
       True, put_if_absent() and acquire_marker() succeed for exactly one of
       any number of concurrent callers, across every process sharing the
       backend.

Error Handling:
    Backend failures are raised as StorageError. Adapters must not leak
    backend-specific exceptions; the engine catches StorageError and fails
    open.
"""

from typing import Protocol, runtime_checkable

from idempotency_replay.models import CachedResponse


@runtime_checkable
class IdempotencyStore(Protocol):
    """Protocol for idempotency storage backends.

    Attributes:
        shared: True when other processes see the same entries. The in-flight
            registry then also arbitrates through the backend's markers.
        supports_conditional_write: True when put_if_absent() and
            acquire_marker() are atomic on the backend.
    """

    shared: bool
    supports_conditional_write: bool

    async def get(self, key: str) -> CachedResponse | None:
        """Return the live entry for ``key``, or None.

        Raises:
            StorageError: If the backend cannot be read.
        """
        ...

    async def put(self, key: str, response: CachedResponse, ttl_seconds: float) -> bool:
        """Store ``response`` under ``key``, replacing any existing entry.

        Returns:
            True once the entry is stored.

        Raises:
            StorageError: If the backend cannot be written.
        """
        ...

    async def put_if_absent(self, key: str, response: CachedResponse, ttl_seconds: float) -> bool:
        """Store ``response`` only if no live entry exists for ``key``.

        Returns:
            True if this call stored the entry, False if one already existed.

        Raises:
            StorageError: If the backend cannot be written.
        """
        ...

    async def delete(self, key: str) -> bool:
        """Invalidate ``key``.

        Returns:
            True if an entry was removed.
        """
        ...

    async def clear(self, prefix: str) -> int:
        """Remove every entry whose key starts with ``prefix``.

        Returns:
            The number of entries removed.
        """
        ...

    async def acquire_marker(self, key: str, token: str, ttl_seconds: float) -> bool:
        """Atomically set an in-flight marker holding ``token`` if none is live.

        Returns:
            True if the marker now belongs to ``token``.
        """
        ...

    async def release_marker(self, key: str, token: str) -> bool:
        """Delete the marker for ``key`` only if it still holds ``token``.

        Returns:
            True if the marker was deleted.
        """
        ...

    async def cleanup_expired(self) -> int:
        """Purge expired entries and markers.

        Backends with native expiry may return 0.

        Returns:
            The number of entries removed.
        """
        ...
