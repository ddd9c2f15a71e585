"""ASGI middleware adapter for FastAPI and Starlette applications.

The middleware:
1. Converts the Starlette request to the internal Request format, resolving
   whether the matched route handler opted out
2. Runs it through IdempotencyInterceptor
3. Converts the resulting response back, keeping header order and duplicates

Examples:
    FastAPI integration::

        from fastapi import FastAPI
        from idempotency_replay.adapters.asgi import ASGIIdempotencyMiddleware
        from idempotency_replay.config import IdempotencyConfig
        from idempotency_replay.storage.memory import MemoryIdempotencyStore

        app = FastAPI()
        app.add_middleware(
            ASGIIdempotencyMiddleware,
            store=MemoryIdempotencyStore(),
            config=IdempotencyConfig(wait_policy="no-wait"),
        )

        @app.post("/orders")
        async def create_order(order: OrderIn):
            # Retries carrying the same X-Idempotency-Key replay this response
            return {"id": "o1"}

    Starlette integration with a Redis-backed store::

        from starlette.applications import Starlette
        from starlette.middleware import Middleware

        config = IdempotencyConfig(storage_adapter="redis", redis_url="redis://cache:6379/0")
        app = Starlette(middleware=[Middleware(ASGIIdempotencyMiddleware, config=config)])
"""

from collections.abc import Awaitable, Callable
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request as StarletteRequest
from starlette.responses import Response
from starlette.routing import Match

from idempotency_replay.config import IdempotencyConfig
from idempotency_replay.core.interceptor import IdempotencyInterceptor, Request
from idempotency_replay.core.key_policy import is_idempotency_disabled
from idempotency_replay.core.replay import ReplayedResponse
from idempotency_replay.errors.cache import ErrorResponseCache
from idempotency_replay.storage.base import IdempotencyStore
from idempotency_replay.storage.factory import create_store


class ASGIIdempotencyMiddleware(BaseHTTPMiddleware):
    """Starlette middleware applying idempotency handling to every request.

    Attributes:
        store: Store for captured responses
        config: Engine configuration
        error_cache: Cache for rendered error payloads, if enabled
        interceptor: Core interceptor instance
    """

    def __init__(
        self,
        app: Any,
        store: IdempotencyStore | None = None,
        config: IdempotencyConfig | None = None,
        error_cache: ErrorResponseCache | None = None,
    ) -> None:
        """Initialize the middleware.

        Args:
            app: The ASGI application
            store: Store to use; built from ``config.storage_adapter`` if omitted
            config: Engine configuration (defaults if omitted)
            error_cache: Error payload cache; built over ``store`` when omitted
                and ``config.error_cache_enabled`` is set

        Raises:
            BackendCapabilityError: If the store cannot arbitrate across
                processes and the config requires it.
        """
        super().__init__(app)
        self.config = config or IdempotencyConfig()
        self.store = store if store is not None else create_store(self.config)

        if error_cache is None and self.config.error_cache_enabled:
            error_cache = ErrorResponseCache(self.store, self.config)
        self.error_cache = error_cache

        self.interceptor = IdempotencyInterceptor(self.store, self.config, error_cache=self.error_cache)

    async def dispatch(
        self,
        request: StarletteRequest,
        call_next: Callable[[StarletteRequest], Awaitable[Response]],
    ) -> Response:
        internal_request = await self._convert_request(request)

        async def handler(_req: Request) -> ReplayedResponse:
            response = await call_next(request)
            return await self._read_response(response)

        result = await self.interceptor.process(internal_request, handler)
        return self._convert_response(result)

    async def _convert_request(self, request: StarletteRequest) -> Request:
        return Request(
            method=request.method,
            path=request.url.path,
            query_string=request.url.query or "",
            headers=[(key.decode("latin-1"), value.decode("latin-1")) for key, value in request.headers.raw],
            body=await request.body(),
            opt_out=self._route_opted_out(request),
        )

    def _route_opted_out(self, request: StarletteRequest) -> bool:
        """Return True if the route that will serve ``request`` disabled idempotency."""
        app = request.scope.get("app")
        router = getattr(app, "router", None)
        if router is None:
            return False

        for route in router.routes:
            match, _ = route.matches(request.scope)
            if match == Match.FULL:
                return is_idempotency_disabled(getattr(route, "endpoint", None))

        return False

    async def _read_response(self, response: Response) -> ReplayedResponse:
        body = b""
        if hasattr(response, "body_iterator"):
            async for chunk in response.body_iterator:
                body += chunk.encode(response.charset) if isinstance(chunk, str) else bytes(chunk)
        else:
            body = bytes(response.body)

        return ReplayedResponse(
            status=response.status_code,
            headers=[(key.decode("latin-1"), value.decode("latin-1")) for key, value in response.raw_headers],
            body=body,
        )

    def _convert_response(self, response: ReplayedResponse) -> Response:
        converted = Response(content=response.body, status_code=response.status)

        raw_headers = [
            (key.lower().encode("latin-1"), value.encode("latin-1")) for key, value in response.headers
        ]
        if not any(key == b"content-length" for key, _ in raw_headers):
            raw_headers.append((b"content-length", str(len(response.body)).encode("latin-1")))

        converted.raw_headers = raw_headers
        return converted
