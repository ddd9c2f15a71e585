"""
Idempotency key cache and replay engine.

Clients send an idempotency key with unsafe requests; the first request with
a given key executes and its response is captured, later requests with the
same key get that response replayed without re-executing the handler, and
concurrent duplicates are arbitrated so the handler runs at most once.
"""

from idempotency_replay.adapters.asgi import ASGIIdempotencyMiddleware
from idempotency_replay.config import IdempotencyConfig
from idempotency_replay.core.interceptor import IdempotencyInterceptor, Request
from idempotency_replay.core.key_policy import KeyPolicy, disable_idempotency
from idempotency_replay.core.registry import InFlightRegistry
from idempotency_replay.core.replay import ReplayedResponse
from idempotency_replay.errors.cache import ErrorResponseCache
from idempotency_replay.exceptions import BackendCapabilityError, IdempotencyError, StorageError
from idempotency_replay.models import CachedResponse, ErrorResponse, IdempotencyKey
from idempotency_replay.storage import (
    IdempotencyStore,
    MemoryIdempotencyStore,
    RedisIdempotencyStore,
    create_store,
)

__version__ = "0.1.0"

__all__ = [
    "ASGIIdempotencyMiddleware",
    "BackendCapabilityError",
    "CachedResponse",
    "ErrorResponse",
    "ErrorResponseCache",
    "IdempotencyConfig",
    "IdempotencyError",
    "IdempotencyInterceptor",
    "IdempotencyKey",
    "IdempotencyStore",
    "InFlightRegistry",
    "KeyPolicy",
    "MemoryIdempotencyStore",
    "RedisIdempotencyStore",
    "ReplayedResponse",
    "Request",
    "StorageError",
    "__version__",
    "create_store",
    "disable_idempotency",
]
