"""Demo FastAPI application with idempotency key replay.

Run with: python demo_app.py

Then retry a request with the same key and compare:
    curl -X POST localhost:8000/orders -H 'X-Idempotency-Key: k1' \\
         -H 'content-type: application/json' -d '{"sku": "book", "quantity": 2}'

Settings come from IDEMPOTENCY_* environment variables, for example
IDEMPOTENCY_STORAGE_ADAPTER=redis or IDEMPOTENCY_WAIT_POLICY=no-wait.
"""

import asyncio
import itertools
from datetime import UTC, datetime

import uvicorn
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from idempotency_replay.adapters.asgi import ASGIIdempotencyMiddleware
from idempotency_replay.config import IdempotencyConfig
from idempotency_replay.core.key_policy import disable_idempotency
from idempotency_replay.observability.logging import configure_logging

configure_logging(level="INFO", json_output=False)

app = FastAPI(
    title="Idempotency Replay Demo",
    description="Orders API whose writes are safe to retry",
    version="0.1.0",
)

config = IdempotencyConfig.from_env()
app.add_middleware(ASGIIdempotencyMiddleware, config=config)

_order_ids = itertools.count(1)
_orders: dict[str, dict] = {}


class OrderIn(BaseModel):
    sku: str
    quantity: int


@app.get("/")
async def root():
    return {
        "name": "Idempotency Replay Demo",
        "header": config.header_name,
        "endpoints": {
            "POST /orders": "Create an order (replayed on retry)",
            "PATCH /orders/{order_id}": "Change quantity (replayed on retry)",
            "POST /orders/{order_id}/audit": "Append an audit record (never replayed)",
        },
    }


@app.post("/orders", status_code=201)
async def create_order(order: OrderIn):
    """Create an order; slow enough that concurrent retries overlap."""
    await asyncio.sleep(0.2)

    order_id = f"ord_{next(_order_ids)}"
    _orders[order_id] = {
        "id": order_id,
        "sku": order.sku,
        "quantity": order.quantity,
        "created_at": datetime.now(UTC).isoformat(),
    }
    return _orders[order_id]


@app.patch("/orders/{order_id}")
async def update_quantity(order_id: str, order: OrderIn):
    if order_id not in _orders:
        raise HTTPException(status_code=404, detail="order not found")

    _orders[order_id]["quantity"] = order.quantity
    return _orders[order_id]


@app.post("/orders/{order_id}/audit")
@disable_idempotency
async def audit_order(order_id: str):
    return {"order_id": order_id, "audited_at": datetime.now(UTC).isoformat()}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="info")
