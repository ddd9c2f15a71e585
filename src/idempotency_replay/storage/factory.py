"""Startup-time selection of the storage backend."""

from idempotency_replay.config import IdempotencyConfig
from idempotency_replay.exceptions import BackendCapabilityError
from idempotency_replay.observability.logging import get_logger
from idempotency_replay.storage.base import IdempotencyStore
from idempotency_replay.storage.memory import MemoryIdempotencyStore
from idempotency_replay.storage.redis import RedisIdempotencyStore

logger = get_logger(__name__)


def create_store(config: IdempotencyConfig) -> IdempotencyStore:
    """Build the store named by ``config.storage_adapter``.

    Args:
        config: Engine configuration

    Returns:
        A ready-to-use store

    Example:
        >>> create_store(IdempotencyConfig(max_entries=100)).max_entries
        100
    """
    if config.storage_adapter == "redis":
        logger.info("store.selected", adapter="redis")
        return RedisIdempotencyStore.from_url(config.redis_url)

    logger.info("store.selected", adapter="memory", max_entries=config.max_entries)
    return MemoryIdempotencyStore(max_entries=config.max_entries)


def check_backend(store: IdempotencyStore, config: IdempotencyConfig) -> None:
    """Verify the store can keep the exactly-once guarantee.

    A shared store without atomic conditional writes would let two processes
    both execute the same key. With ``require_atomic_backend`` such a store is
    rejected; otherwise it is accepted with a warning.

    Raises:
        BackendCapabilityError: If the store is unsuitable and the config
            requires atomic admission.
    """
    if not store.shared or store.supports_conditional_write:
        return

    backend = type(store).__name__
    if config.require_atomic_backend:
        raise BackendCapabilityError(
            message=(
                f"{backend} is shared between processes but has no conditional write; "
                "duplicate requests could execute more than once"
            ),
            backend=backend,
        )

    logger.warning(
        "store.non_atomic_backend",
        backend=backend,
        message="Duplicate suppression across processes is best effort",
    )
