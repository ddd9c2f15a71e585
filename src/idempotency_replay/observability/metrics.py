"""Prometheus metrics for the idempotency replay engine.

Metrics include:

- Requests by outcome (not_eligible, executed, replayed, in_progress)
- Execution time of admitted requests
- Keys currently in flight in this process
- Store failures by operation (every one of them was failed open)
- Error cache lookups by result
- Cleanup runs

Examples:
    >>> record_request("replayed", 201)
    >>> record_store_failure("get")
    >>> record_execution_time(0.150)
"""

from prometheus_client import Counter, Gauge, Histogram

# Labels: result (not_eligible, executed, replayed, in_progress), status_code
requests_total = Counter(
    "idempotency_requests_total",
    "Total number of requests seen by the idempotency interceptor",
    ["result", "status_code"],
)

# Only admitted executions, never replays
execution_seconds = Histogram(
    "idempotency_execution_seconds",
    "Downstream execution time of admitted requests in seconds",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

in_flight_keys = Gauge(
    "idempotency_in_flight_keys",
    "Number of idempotency keys currently executing in this process",
)

store_failures_total = Counter(
    "idempotency_store_failures_total",
    "Store operations that failed and were handled fail-open",
    ["operation"],
)

error_cache_lookups_total = Counter(
    "idempotency_error_cache_lookups_total",
    "Error response cache lookups",
    ["result"],
)

cleanup_operations = Counter(
    "idempotency_cleanup_operations_total",
    "Total number of cleanup operations performed",
)

cleanup_records_removed = Counter(
    "idempotency_cleanup_records_removed_total",
    "Total number of expired entries removed by cleanup",
)


def record_request(result: str, status_code: int) -> None:
    """Record a processed request.

    Args:
        result: The outcome (not_eligible, executed, replayed, in_progress)
        status_code: HTTP status code of the response
    """
    requests_total.labels(result=result, status_code=str(status_code)).inc()


def record_execution_time(seconds: float) -> None:
    """Record downstream execution time of an admitted request."""
    execution_seconds.observe(seconds)


def increment_in_flight() -> None:
    in_flight_keys.inc()


def decrement_in_flight() -> None:
    in_flight_keys.dec()


def record_store_failure(operation: str) -> None:
    store_failures_total.labels(operation=operation).inc()


def record_error_cache_lookup(hit: bool) -> None:
    error_cache_lookups_total.labels(result="hit" if hit else "miss").inc()


def record_cleanup(records_removed: int) -> None:
    """Record a cleanup operation.

    Args:
        records_removed: Number of expired entries removed
    """
    cleanup_operations.inc()
    cleanup_records_removed.inc(records_removed)
