"""Unit tests for metrics and logging wiring."""

import json

import pytest
from prometheus_client import REGISTRY

from idempotency_replay.config import IdempotencyConfig
from idempotency_replay.core.interceptor import IdempotencyInterceptor
from idempotency_replay.core.replay import ReplayedResponse
from idempotency_replay.observability.logging import configure_logging, get_logger
from idempotency_replay.observability.metrics import record_error_cache_lookup, record_store_failure


def sample(name: str, **labels: str) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


@pytest.mark.asyncio
async def test_outcomes_are_counted(store, make_request):
    interceptor = IdempotencyInterceptor(store, IdempotencyConfig())

    async def handler(request):
        return ReplayedResponse(201, [("content-type", "application/json")], b"{}")

    executed_before = sample("idempotency_requests_total", result="executed", status_code="201")
    replayed_before = sample("idempotency_requests_total", result="replayed", status_code="201")
    skipped_before = sample("idempotency_requests_total", result="not_eligible", status_code="201")

    await interceptor.process(make_request(key="metrics-key"), handler)
    await interceptor.process(make_request(key="metrics-key"), handler)
    await interceptor.process(make_request(key=None), handler)

    assert sample("idempotency_requests_total", result="executed", status_code="201") == executed_before + 1
    assert sample("idempotency_requests_total", result="replayed", status_code="201") == replayed_before + 1
    assert sample("idempotency_requests_total", result="not_eligible", status_code="201") == skipped_before + 1


def test_store_failures_counted_by_operation():
    before = sample("idempotency_store_failures_total", operation="acquire_marker")
    record_store_failure("acquire_marker")
    assert sample("idempotency_store_failures_total", operation="acquire_marker") == before + 1


def test_error_cache_lookups_counted():
    before = sample("idempotency_error_cache_lookups_total", result="hit")
    record_error_cache_lookup(True)
    assert sample("idempotency_error_cache_lookups_total", result="hit") == before + 1


def test_json_logging(capsys):
    configure_logging(level="INFO", json_output=True)
    get_logger("tests").info("idempotency.replayed", storage_key="idempotency:http:abc")

    line = capsys.readouterr().out.strip().splitlines()[-1]
    payload = json.loads(line)
    assert payload["event"] == "idempotency.replayed"
    assert payload["storage_key"] == "idempotency:http:abc"
    assert payload["level"] == "info"
