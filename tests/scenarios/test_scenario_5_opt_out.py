"""Scenario 5: Opt-out

Some writes must run every time even when clients send a key: routes marked
with disable_idempotency and paths matching disabled_paths.
"""

from fastapi import FastAPI
from fastapi.testclient import TestClient

from idempotency_replay.adapters.asgi import ASGIIdempotencyMiddleware
from idempotency_replay.config import IdempotencyConfig
from idempotency_replay.core.key_policy import disable_idempotency
from idempotency_replay.storage.memory import MemoryIdempotencyStore

KEY = {"X-Idempotency-Key": "same-key"}


def create_app(store: MemoryIdempotencyStore, config: IdempotencyConfig) -> tuple[FastAPI, dict[str, int]]:
    app = FastAPI()
    app.add_middleware(ASGIIdempotencyMiddleware, store=store, config=config)
    calls = {"count": 0}

    @app.post("/orders/{order_id}/audit")
    @disable_idempotency
    async def audit_order(order_id: str):
        calls["count"] += 1
        return {"order_id": order_id, "audit": calls["count"]}

    @app.post("/webhooks/{provider}")
    async def receive_webhook(provider: str):
        calls["count"] += 1
        return {"provider": provider, "delivery": calls["count"]}

    @app.post("/orders")
    async def create_order():
        calls["count"] += 1
        return {"order": calls["count"]}

    return app, calls


def test_decorated_route_always_executes() -> None:
    store = MemoryIdempotencyStore()
    app, calls = create_app(store, IdempotencyConfig())
    client = TestClient(app)

    first = client.post("/orders/o1/audit", headers=KEY)
    second = client.post("/orders/o1/audit", headers=KEY)

    assert first.json()["audit"] == 1
    assert second.json()["audit"] == 2
    assert len(store) == 0


def test_disabled_path_always_executes() -> None:
    app, calls = create_app(MemoryIdempotencyStore(), IdempotencyConfig(disabled_paths=["/webhooks/*"]))
    client = TestClient(app)

    client.post("/webhooks/stripe", headers=KEY)
    client.post("/webhooks/stripe", headers=KEY)

    assert calls["count"] == 2


def test_other_routes_still_replay() -> None:
    app, calls = create_app(MemoryIdempotencyStore(), IdempotencyConfig(disabled_paths=["/webhooks/*"]))
    client = TestClient(app)

    client.post("/orders/o1/audit", headers=KEY)
    first = client.post("/orders", headers=KEY)
    retry = client.post("/orders", headers=KEY)

    assert retry.json() == first.json() == {"order": 2}
    assert calls["count"] == 2


def test_globally_disabled() -> None:
    app, calls = create_app(MemoryIdempotencyStore(), IdempotencyConfig(enabled=False))
    client = TestClient(app)

    client.post("/orders", headers=KEY)
    client.post("/orders", headers=KEY)

    assert calls["count"] == 2
