"""Framework-agnostic idempotency interceptor.

This module orchestrates the per-request pipeline. It is wrapped by the
framework adapters (see ``idempotency_replay.adapters``).

Per request:
    1. NotEligible: the key policy finds no usable key; forward untouched
    2. Lookup/Admit: ask the in-flight registry for the key
    3. Replay: a cached response exists; return it, the handler never runs
    4. In flight: another request holds the key; wait (bounded) or answer
       409 immediately, depending on ``wait_policy``
    5. Execute: run the downstream handler
    6. Capture: snapshot the response if its status is cacheable
    7. Store: persist the snapshot for ``default_ttl_seconds``
    8. Release: always, on every exit path of Execute

Examples:
    Using the interceptor directly::

        from idempotency_replay.config import IdempotencyConfig
        from idempotency_replay.core.interceptor import IdempotencyInterceptor, Request
        from idempotency_replay.storage.memory import MemoryIdempotencyStore

        interceptor = IdempotencyInterceptor(MemoryIdempotencyStore(), IdempotencyConfig())

        async def handler(request: Request) -> ReplayedResponse:
            return ReplayedResponse(201, [("content-type", "application/json")], b'{"id": "o1"}')

        response = await interceptor.process(request, handler)
"""

import asyncio
import time
from collections.abc import Awaitable, Callable

from idempotency_replay.config import IdempotencyConfig
from idempotency_replay.core.key_policy import KeyPolicy
from idempotency_replay.core.registry import InFlightRegistry
from idempotency_replay.core.replay import ReplayedResponse, capture_response, replay_response
from idempotency_replay.errors.cache import ErrorResponseCache
from idempotency_replay.exceptions import StorageError
from idempotency_replay.models import (
    AdmissionResult,
    AdmissionState,
    CachedResponse,
    ErrorResponse,
    IdempotencyKey,
)
from idempotency_replay.observability.logging import get_logger
from idempotency_replay.observability.metrics import (
    record_execution_time,
    record_request,
    record_store_failure,
)
from idempotency_replay.storage.base import IdempotencyStore
from idempotency_replay.storage.factory import check_backend

logger = get_logger(__name__)

IN_PROGRESS_CODE = "IDEMPOTENCY_REQUEST_IN_PROGRESS"
IN_PROGRESS_RETRY_AFTER_SECONDS = 2


class Request:
    """Abstract request representation.

    Framework adapters convert their request objects into this format.

    Attributes:
        method: HTTP method (POST, PUT, etc.)
        path: URL path
        query_string: Query string without leading '?'
        headers: Ordered request header pairs
        body: Request body as bytes
        opt_out: True when the matched route handler disabled idempotency
    """

    def __init__(
        self,
        method: str,
        path: str,
        query_string: str,
        headers: list[tuple[str, str]],
        body: bytes,
        opt_out: bool = False,
    ) -> None:
        self.method = method
        self.path = path
        self.query_string = query_string
        self.headers = headers
        self.body = body
        self.opt_out = opt_out


Handler = Callable[[Request], Awaitable[ReplayedResponse]]


class IdempotencyInterceptor:
    """Replays, arbitrates or executes each request exactly as configured.

    Attributes:
        store: Store for captured responses
        config: Engine configuration
        policy: Eligibility and key extraction
        registry: In-flight arbitration
        error_cache: Optional cache for the in-progress error payload
    """

    def __init__(
        self,
        store: IdempotencyStore,
        config: IdempotencyConfig,
        error_cache: ErrorResponseCache | None = None,
        registry: InFlightRegistry | None = None,
    ) -> None:
        """Initialize the interceptor.

        Raises:
            BackendCapabilityError: If the store is shared, has no conditional
                write and ``require_atomic_backend`` is set.
        """
        check_backend(store, config)

        self.store = store
        self.config = config
        self.policy = KeyPolicy(config)
        self.registry = registry or InFlightRegistry(store, config)
        self.error_cache = error_cache

    async def process(self, request: Request, handler: Handler) -> ReplayedResponse:
        """Process a request with idempotency handling.

        Args:
            request: The incoming request
            handler: Downstream handler, invoked at most once per key

        Returns:
            The handler's response, a replayed response, or a 409
            in-progress response.

        Raises:
            Exception: Whatever the handler raises, unchanged.
        """
        key = self.policy.resolve(request.method, request.path, request.headers, request.opt_out)
        if key is None:
            response = await handler(request)
            record_request("not_eligible", response.status)
            return response

        admission = await self.registry.try_admit(key)
        if admission.state == AdmissionState.IN_FLIGHT:
            admission = await self._await_turn(key)

        # AdmissionResult carries a response only when CACHED and a token only when ADMITTED
        if admission.response is not None:
            return self._replay(key, admission.response)

        if admission.token is None:
            return await self._in_progress(key, request)

        return await self._execute(key, admission.token, request, handler)

    async def _await_turn(self, key: IdempotencyKey) -> AdmissionResult:
        """Apply the wait policy to a request whose key is in flight."""
        if self.config.wait_policy == "no-wait":
            return AdmissionResult(state=AdmissionState.IN_FLIGHT)

        deadline = time.monotonic() + self.config.wait_timeout_seconds

        while (remaining := deadline - time.monotonic()) > 0:
            await asyncio.sleep(min(self.config.poll_interval_seconds, remaining))

            # ADMITTED here means the first execution ended without a cacheable result
            admission = await self.registry.try_admit(key)
            if admission.state != AdmissionState.IN_FLIGHT:
                return admission

        logger.info(
            "idempotency.wait_timeout",
            storage_key=key.storage_key,
            wait_timeout_seconds=self.config.wait_timeout_seconds,
        )
        return AdmissionResult(state=AdmissionState.IN_FLIGHT)

    async def _execute(
        self,
        key: IdempotencyKey,
        token: str,
        request: Request,
        handler: Handler,
    ) -> ReplayedResponse:
        start = time.perf_counter()
        try:
            response = await handler(request)
            record_execution_time(time.perf_counter() - start)

            if response.status >= self.config.cache_status_below:
                logger.info(
                    "idempotency.not_stored",
                    storage_key=key.storage_key,
                    status_code=response.status,
                )
                record_request("executed", response.status)
                return response

            return await self._store(key, response)

        except Exception as e:
            logger.warning(
                "idempotency.handler_failed",
                storage_key=key.storage_key,
                error_type=type(e).__name__,
            )
            raise

        finally:
            await self.registry.release(key, token)

    async def _store(self, key: IdempotencyKey, response: ReplayedResponse) -> ReplayedResponse:
        """Capture ``response`` under ``key`` and return what this caller sends.

        Once stored, the first caller gets the captured form, volatile headers
        dropped, so it matches every replay apart from the replay header. If
        another process stored first, its response is replayed instead. When
        nothing could be stored the handler's response goes back unchanged.
        """
        cached = capture_response(response)
        ttl = self.config.default_ttl_seconds

        try:
            if self.store.shared and self.store.supports_conditional_write:
                stored = await self.store.put_if_absent(key.storage_key, cached, ttl)
            else:
                stored = await self.store.put(key.storage_key, cached, ttl)
        except StorageError as e:
            # The caller still gets its response; only future replay is lost
            record_store_failure("put")
            logger.warning("store.put_failed", storage_key=key.storage_key, error=str(e))
            record_request("executed", response.status)
            return response

        if not stored:
            existing = await self.registry.lookup(key)
            if existing is not None:
                logger.warning("idempotency.concurrent_store", storage_key=key.storage_key)
                return self._replay(key, existing)

            logger.warning("idempotency.store_lost", storage_key=key.storage_key, status_code=response.status)
            record_request("executed", response.status)
            return response

        logger.info(
            "idempotency.stored",
            storage_key=key.storage_key,
            status_code=response.status,
            ttl_seconds=ttl,
        )
        record_request("executed", response.status)
        return replay_response(cached)

    def _replay(self, key: IdempotencyKey, cached: CachedResponse) -> ReplayedResponse:
        logger.info(
            "idempotency.replayed",
            storage_key=key.storage_key,
            status_code=cached.status_code,
        )
        record_request("replayed", cached.status_code)
        return replay_response(cached, self.config.replay_header)

    async def _in_progress(self, key: IdempotencyKey, request: Request) -> ReplayedResponse:
        def build() -> ErrorResponse:
            return ErrorResponse(
                code=IN_PROGRESS_CODE,
                status=409,
                error="Conflict",
                message="A request with this idempotency key is still being processed",
                path=request.path,
                retryable=True,
                retry_after=IN_PROGRESS_RETRY_AFTER_SECONDS,
            )

        if self.error_cache is not None:
            rendered = await self.error_cache.get_or_build(IN_PROGRESS_CODE, 409, request.path, build)
        else:
            rendered = build().to_cached_response()

        logger.info("idempotency.in_progress", storage_key=key.storage_key)
        record_request("in_progress", rendered.status_code)
        return replay_response(rendered)
