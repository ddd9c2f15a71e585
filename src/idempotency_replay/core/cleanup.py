"""Periodic eviction of expired entries.

Stores that expire lazily (MemoryIdempotencyStore) only drop an expired
entry when it is read again. A long-running service with many one-shot keys
therefore runs this sweep in the background so memory follows the live key
set rather than the historical one. Redis expires keys natively and its
``cleanup_expired`` is a no-op, so running the sweep against it only
produces the log line.

Examples:
    Application lifespan::

        from contextlib import asynccontextmanager

        @asynccontextmanager
        async def lifespan(app):
            task = start_cleanup_task(store, interval_seconds=60)
            yield
            await stop_cleanup_task(task)
"""

import asyncio

from idempotency_replay.exceptions import StorageError
from idempotency_replay.observability.logging import get_logger
from idempotency_replay.observability.metrics import record_cleanup, record_store_failure
from idempotency_replay.storage.base import IdempotencyStore

logger = get_logger(__name__)

STOP_TIMEOUT_SECONDS = 5.0


async def run_cleanup_once(store: IdempotencyStore) -> int:
    """Sweep ``store`` once.

    Returns:
        Number of entries removed; 0 if the store could not be reached.
    """
    try:
        removed = await store.cleanup_expired()
    except StorageError as e:
        record_store_failure("cleanup_expired")
        logger.error("cleanup.failed", operation=e.operation, error=str(e))
        return 0

    record_cleanup(removed)
    if removed:
        logger.info("cleanup.completed", entries_removed=removed)
    else:
        logger.debug("cleanup.completed", entries_removed=0)
    return removed


async def cleanup_loop(
    store: IdempotencyStore,
    interval_seconds: float,
    stop_event: asyncio.Event,
) -> None:
    """Sweep ``store`` every ``interval_seconds`` until ``stop_event`` is set."""
    logger.info("cleanup.started", interval_seconds=interval_seconds)

    while not stop_event.is_set():
        await run_cleanup_once(store)
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            continue

    logger.info("cleanup.stopped")


def start_cleanup_task(store: IdempotencyStore, interval_seconds: float = 300) -> asyncio.Task[None]:
    """Schedule the sweep on the running event loop.

    Args:
        store: Store to sweep
        interval_seconds: Delay between sweeps

    Returns:
        The task; pass it to stop_cleanup_task on shutdown.

    Raises:
        ValueError: If interval_seconds is not positive.
    """
    if interval_seconds <= 0:
        raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")

    stop_event = asyncio.Event()
    task = asyncio.create_task(cleanup_loop(store, interval_seconds, stop_event))
    task._stop_event = stop_event  # type: ignore[attr-defined]
    return task


async def stop_cleanup_task(task: asyncio.Task[None]) -> None:
    """Signal the sweep to stop and wait for it, cancelling if it hangs."""
    stop_event: asyncio.Event | None = getattr(task, "_stop_event", None)
    if stop_event is not None:
        stop_event.set()

    try:
        await asyncio.wait_for(task, timeout=STOP_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        logger.warning("cleanup.stop_timeout", timeout_seconds=STOP_TIMEOUT_SECONDS)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.debug("cleanup.cancelled")
