"""Storage adapters for the idempotency replay engine.

All adapters implement the IdempotencyStore protocol defined in base.py.

Available Adapters:
    - MemoryIdempotencyStore: bounded in-process map with LRU eviction
    - RedisIdempotencyStore: Redis-backed store shared between processes
"""

from idempotency_replay.storage.base import IdempotencyStore
from idempotency_replay.storage.factory import check_backend, create_store
from idempotency_replay.storage.memory import MemoryIdempotencyStore
from idempotency_replay.storage.redis import RedisIdempotencyStore

__all__ = [
    "IdempotencyStore",
    "MemoryIdempotencyStore",
    "RedisIdempotencyStore",
    "create_store",
    "check_backend",
]
