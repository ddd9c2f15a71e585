"""Redis store for deployments with several processes.

Entries are JSON-serialised CachedResponse snapshots stored with native
expiry, so no cleanup task is needed. Conditional writes map onto
``SET ... NX PX`` and marker release onto a ``WATCH``/``MULTI`` transaction,
which gives every process sharing the Redis instance the same admission
guarantee a single process gets from its in-memory lock.

Examples:
    Connecting from a URL::

        store = RedisIdempotencyStore.from_url("redis://cache:6379/0")

    Reusing an existing client::

        from redis import asyncio as aioredis

        client = aioredis.Redis(host="cache", port=6379)
        store = RedisIdempotencyStore(client)
"""

import re

from pydantic import ValidationError
from redis import asyncio as aioredis
from redis.exceptions import RedisError, WatchError

from idempotency_replay.exceptions import StorageError
from idempotency_replay.models import CachedResponse
from idempotency_replay.storage.base import IdempotencyStore

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def _ttl_ms(ttl_seconds: float) -> int:
    return max(1, int(ttl_seconds * 1000))


def _as_text(value: bytes | str | None) -> str | None:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


class RedisIdempotencyStore(IdempotencyStore):
    """IdempotencyStore backed by a Redis server.

    Attributes:
        shared: Always True.
        supports_conditional_write: Always True (``SET NX``).
    """

    shared = True
    supports_conditional_write = True

    def __init__(self, client: aioredis.Redis) -> None:
        """Wrap an asyncio Redis client.

        Args:
            client: Client with or without ``decode_responses``.
        """
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisIdempotencyStore":
        return cls(aioredis.from_url(url))

    async def aclose(self) -> None:
        await self._client.aclose()

    def _failure(self, operation: str, key: str, error: Exception) -> StorageError:
        return StorageError(
            message=f"Redis {operation} failed for {key}: {error}",
            operation=operation,
            cause=error,
        )

    async def get(self, key: str) -> CachedResponse | None:
        try:
            raw = await self._client.get(key)
        except RedisError as e:
            raise self._failure("get", key, e) from e

        if raw is None:
            return None

        try:
            return CachedResponse.from_json(raw)
        except ValidationError as e:
            raise StorageError(
                message=f"Unreadable entry stored under {key}",
                operation="get",
                cause=e,
            ) from e

    async def put(self, key: str, response: CachedResponse, ttl_seconds: float) -> bool:
        try:
            await self._client.set(key, response.to_json(), px=_ttl_ms(ttl_seconds))
        except RedisError as e:
            raise self._failure("put", key, e) from e
        return True

    async def put_if_absent(self, key: str, response: CachedResponse, ttl_seconds: float) -> bool:
        try:
            stored = await self._client.set(
                key,
                response.to_json(),
                px=_ttl_ms(ttl_seconds),
                nx=True,
            )
        except RedisError as e:
            raise self._failure("put_if_absent", key, e) from e
        return bool(stored)

    async def delete(self, key: str) -> bool:
        try:
            removed = await self._client.delete(key)
        except RedisError as e:
            raise self._failure("delete", key, e) from e
        return removed > 0

    async def clear(self, prefix: str) -> int:
        pattern = _GLOB_SPECIAL.sub(r"\\\1", prefix) + "*"
        removed = 0
        try:
            async for key in self._client.scan_iter(match=pattern):
                removed += await self._client.delete(key)
        except RedisError as e:
            raise self._failure("clear", prefix, e) from e
        return removed

    async def acquire_marker(self, key: str, token: str, ttl_seconds: float) -> bool:
        try:
            acquired = await self._client.set(key, token, px=_ttl_ms(ttl_seconds), nx=True)
        except RedisError as e:
            raise self._failure("acquire_marker", key, e) from e
        return bool(acquired)

    async def release_marker(self, key: str, token: str) -> bool:
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                await pipe.watch(key)
                current = _as_text(await pipe.get(key))
                if current != token:
                    await pipe.unwatch()
                    return False

                pipe.multi()
                pipe.delete(key)
                await pipe.execute()
                return True
        except WatchError:
            # Marker changed between WATCH and EXEC; it is no longer ours
            return False
        except RedisError as e:
            raise self._failure("release_marker", key, e) from e

    async def cleanup_expired(self) -> int:
        # Redis expires keys natively
        return 0
