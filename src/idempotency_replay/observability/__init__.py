"""Observability utilities for the idempotency replay engine.

- Prometheus metrics for replay, admission and store behaviour
- Structured logging with contextual information
"""

from idempotency_replay.observability.logging import configure_logging, get_logger
from idempotency_replay.observability.metrics import (
    record_cleanup,
    record_error_cache_lookup,
    record_execution_time,
    record_request,
    record_store_failure,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "record_request",
    "record_execution_time",
    "record_store_failure",
    "record_error_cache_lookup",
    "record_cleanup",
]
