"""
Pytest configuration and shared fixtures for idempotency_replay tests.
"""

from collections.abc import Callable

import pytest

from idempotency_replay.config import IdempotencyConfig
from idempotency_replay.core.interceptor import Request
from idempotency_replay.exceptions import StorageError
from idempotency_replay.models import CachedResponse
from idempotency_replay.storage.memory import MemoryIdempotencyStore


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailingStore:
    """A store whose backend is unreachable: every operation raises StorageError."""

    shared = False
    supports_conditional_write = True

    def __init__(self) -> None:
        self.calls: list[str] = []

    def _fail(self, operation: str) -> StorageError:
        self.calls.append(operation)
        return StorageError("backend unreachable", operation=operation, cause=ConnectionError("refused"))

    async def get(self, key: str) -> CachedResponse | None:
        raise self._fail("get")

    async def put(self, key: str, response: CachedResponse, ttl_seconds: float) -> bool:
        raise self._fail("put")

    async def put_if_absent(self, key: str, response: CachedResponse, ttl_seconds: float) -> bool:
        raise self._fail("put_if_absent")

    async def delete(self, key: str) -> bool:
        raise self._fail("delete")

    async def clear(self, prefix: str) -> int:
        raise self._fail("clear")

    async def acquire_marker(self, key: str, token: str, ttl_seconds: float) -> bool:
        raise self._fail("acquire_marker")

    async def release_marker(self, key: str, token: str) -> bool:
        raise self._fail("release_marker")

    async def cleanup_expired(self) -> int:
        raise self._fail("cleanup_expired")


@pytest.fixture
def clock() -> FakeClock:
    """Provide a manually advanced clock."""
    return FakeClock()


@pytest.fixture
def store() -> MemoryIdempotencyStore:
    """Provide a fresh in-memory store."""
    return MemoryIdempotencyStore()


@pytest.fixture
def failing_store() -> FailingStore:
    """Provide a store that fails every operation."""
    return FailingStore()


@pytest.fixture
def config() -> IdempotencyConfig:
    """Provide a config with short polling so wait-policy tests stay fast."""
    return IdempotencyConfig(poll_interval_seconds=0.01, wait_timeout_seconds=2.0)


@pytest.fixture
def sample_idempotency_key() -> str:
    """Provide a sample idempotency key for tests."""
    return "test-key-12345"


@pytest.fixture
def make_request(sample_idempotency_key: str) -> Callable[..., Request]:
    """Build interceptor requests; ``key=None`` omits the header."""

    def _make(
        method: str = "POST",
        path: str = "/orders",
        key: str | None = sample_idempotency_key,
        body: bytes = b'{"sku": "book"}',
        opt_out: bool = False,
    ) -> Request:
        headers = [("content-type", "application/json")]
        if key is not None:
            headers.append(("X-Idempotency-Key", key))
        return Request(method, path, "", headers, body, opt_out=opt_out)

    return _make
