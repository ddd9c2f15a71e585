"""Framework adapters around IdempotencyInterceptor.

- asgi.py: Starlette middleware, usable with FastAPI and plain Starlette
"""

from idempotency_replay.adapters.asgi import ASGIIdempotencyMiddleware

__all__ = ["ASGIIdempotencyMiddleware"]
