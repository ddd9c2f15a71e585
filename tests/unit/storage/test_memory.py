"""Unit tests for MemoryIdempotencyStore.

This test suite covers:
    - Basic operations (get, put, put_if_absent, delete)
    - TTL expiry against an injected clock
    - LRU eviction at capacity
    - In-flight markers
    - Prefix clearing and bulk cleanup
"""

import asyncio

import pytest

from idempotency_replay.models import CachedResponse
from idempotency_replay.storage.base import IdempotencyStore
from idempotency_replay.storage.memory import MemoryIdempotencyStore


@pytest.fixture
def adapter(clock):
    """Create a fresh store driven by the fake clock."""
    return MemoryIdempotencyStore(max_entries=3, clock=clock)


@pytest.fixture
def sample_response():
    return CachedResponse.capture(201, [("content-type", "application/json")], b'{"id": "o1"}')


@pytest.fixture
def other_response():
    return CachedResponse.capture(200, [("content-type", "application/json")], b'{"id": "o2"}')


# ============================================================================
# Basic Operations
# ============================================================================


def test_satisfies_protocol(adapter):
    assert isinstance(adapter, IdempotencyStore)
    assert adapter.shared is False
    assert adapter.supports_conditional_write is True


def test_rejects_non_positive_capacity():
    with pytest.raises(ValueError, match="max_entries"):
        MemoryIdempotencyStore(max_entries=0)


@pytest.mark.asyncio
async def test_get_nonexistent_key(adapter):
    """Test that get() returns None for nonexistent key."""
    assert await adapter.get("nonexistent") is None


@pytest.mark.asyncio
async def test_put_then_get(adapter, sample_response):
    assert await adapter.put("k", sample_response, ttl_seconds=60) is True
    assert await adapter.get("k") == sample_response


@pytest.mark.asyncio
async def test_put_overwrites(adapter, sample_response, other_response):
    await adapter.put("k", sample_response, 60)
    await adapter.put("k", other_response, 60)
    assert await adapter.get("k") == other_response


@pytest.mark.asyncio
async def test_put_if_absent_keeps_first_value(adapter, sample_response, other_response):
    assert await adapter.put_if_absent("k", sample_response, 60) is True
    assert await adapter.put_if_absent("k", other_response, 60) is False
    assert await adapter.get("k") == sample_response


@pytest.mark.asyncio
async def test_put_if_absent_concurrent_single_winner(adapter, sample_response, other_response):
    """Exactly one of many concurrent conditional writes succeeds."""
    results = await asyncio.gather(
        *[adapter.put_if_absent("k", sample_response if i % 2 else other_response, 60) for i in range(20)]
    )
    assert results.count(True) == 1


@pytest.mark.asyncio
async def test_delete(adapter, sample_response):
    await adapter.put("k", sample_response, 60)
    assert await adapter.delete("k") is True
    assert await adapter.delete("k") is False
    assert await adapter.get("k") is None


# ============================================================================
# TTL Expiry
# ============================================================================


@pytest.mark.asyncio
async def test_entry_expires_after_ttl(adapter, clock, sample_response):
    await adapter.put("k", sample_response, ttl_seconds=10)

    clock.advance(9.9)
    assert await adapter.get("k") == sample_response

    clock.advance(0.1)
    assert await adapter.get("k") is None
    assert len(adapter) == 0


@pytest.mark.asyncio
async def test_put_if_absent_after_expiry(adapter, clock, sample_response, other_response):
    await adapter.put_if_absent("k", sample_response, ttl_seconds=1)
    clock.advance(1)
    assert await adapter.put_if_absent("k", other_response, ttl_seconds=1) is True
    assert await adapter.get("k") == other_response


@pytest.mark.asyncio
async def test_cleanup_expired(adapter, clock, sample_response):
    await adapter.put("short", sample_response, ttl_seconds=5)
    await adapter.put("long", sample_response, ttl_seconds=50)
    await adapter.acquire_marker("short:inflight", "t", ttl_seconds=5)

    clock.advance(10)

    assert await adapter.cleanup_expired() == 1
    assert len(adapter) == 1
    assert await adapter.get("long") == sample_response
    assert await adapter.acquire_marker("short:inflight", "t2", ttl_seconds=5) is True


# ============================================================================
# LRU Eviction
# ============================================================================


@pytest.mark.asyncio
async def test_evicts_least_recently_used(adapter, sample_response):
    for key in ("a", "b", "c"):
        await adapter.put(key, sample_response, 60)

    # Touch "a" so "b" becomes the oldest
    await adapter.get("a")
    await adapter.put("d", sample_response, 60)

    assert len(adapter) == 3
    assert await adapter.get("b") is None
    assert await adapter.get("a") == sample_response
    assert await adapter.get("d") == sample_response


# ============================================================================
# Markers
# ============================================================================


@pytest.mark.asyncio
async def test_marker_single_owner(adapter):
    assert await adapter.acquire_marker("m", "owner", 30) is True
    assert await adapter.acquire_marker("m", "intruder", 30) is False


@pytest.mark.asyncio
async def test_release_marker_requires_matching_token(adapter):
    await adapter.acquire_marker("m", "owner", 30)

    assert await adapter.release_marker("m", "intruder") is False
    assert await adapter.release_marker("m", "owner") is True
    assert await adapter.release_marker("m", "owner") is False


@pytest.mark.asyncio
async def test_expired_marker_can_be_taken_over(adapter, clock):
    await adapter.acquire_marker("m", "owner", 30)
    clock.advance(30)
    assert await adapter.acquire_marker("m", "next", 30) is True


# ============================================================================
# Prefix Clearing
# ============================================================================


@pytest.mark.asyncio
async def test_clear_only_touches_prefix(sample_response):
    store = MemoryIdempotencyStore()
    await store.put("idempotency:error:A:503:/orders", sample_response, 60)
    await store.put("idempotency:error:B:503:/orders", sample_response, 60)
    await store.put("idempotency:http:k1", sample_response, 60)

    assert await store.clear("idempotency:error:") == 2
    assert await store.get("idempotency:http:k1") == sample_response
