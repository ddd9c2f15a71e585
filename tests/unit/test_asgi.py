"""Unit tests for the ASGI adapter's construction and conversions."""

import pytest
from starlette.responses import Response

from idempotency_replay.adapters.asgi import ASGIIdempotencyMiddleware
from idempotency_replay.config import IdempotencyConfig
from idempotency_replay.core.replay import ReplayedResponse
from idempotency_replay.exceptions import BackendCapabilityError
from idempotency_replay.storage.memory import MemoryIdempotencyStore


async def dummy_app(scope, receive, send) -> None:
    return None


class PlainSharedStore(MemoryIdempotencyStore):
    shared = True
    supports_conditional_write = False


def test_builds_store_from_config() -> None:
    middleware = ASGIIdempotencyMiddleware(dummy_app, config=IdempotencyConfig(max_entries=5))

    assert isinstance(middleware.store, MemoryIdempotencyStore)
    assert middleware.store.max_entries == 5
    assert middleware.error_cache is None


def test_builds_error_cache_when_enabled() -> None:
    store = MemoryIdempotencyStore()
    middleware = ASGIIdempotencyMiddleware(dummy_app, store=store, config=IdempotencyConfig(error_cache_enabled=True))

    assert middleware.error_cache is not None
    assert middleware.error_cache.store is store
    assert middleware.interceptor.error_cache is middleware.error_cache


def test_rejects_non_atomic_shared_store() -> None:
    with pytest.raises(BackendCapabilityError):
        ASGIIdempotencyMiddleware(dummy_app, store=PlainSharedStore())


def test_convert_response_keeps_duplicates_and_adds_length() -> None:
    middleware = ASGIIdempotencyMiddleware(dummy_app, store=MemoryIdempotencyStore())
    response = ReplayedResponse(
        409,
        [("content-type", "application/json"), ("Set-Cookie", "a=1"), ("set-cookie", "b=2")],
        b'{"code": "X"}',
    )

    converted = middleware._convert_response(response)

    assert converted.status_code == 409
    assert converted.body == b'{"code": "X"}'
    assert converted.raw_headers == [
        (b"content-type", b"application/json"),
        (b"set-cookie", b"a=1"),
        (b"set-cookie", b"b=2"),
        (b"content-length", b"13"),
    ]


@pytest.mark.asyncio
async def test_read_response_collects_body() -> None:
    middleware = ASGIIdempotencyMiddleware(dummy_app, store=MemoryIdempotencyStore())
    response = Response(content=b"hello", media_type="text/plain", status_code=201)

    replayed = await middleware._read_response(response)

    assert replayed.status == 201
    assert replayed.body == b"hello"
    assert ("content-type", "text/plain; charset=utf-8") in replayed.headers
    assert ("content-length", "5") in replayed.headers
