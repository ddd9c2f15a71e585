"""Unit tests for eligibility and key extraction."""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from idempotency_replay.config import IdempotencyConfig
from idempotency_replay.core.key_policy import KeyPolicy, disable_idempotency, is_idempotency_disabled

KEY_HEADER = "X-Idempotency-Key"


@pytest.fixture
def policy() -> KeyPolicy:
    return KeyPolicy(IdempotencyConfig(disabled_paths=["/webhooks/*", "/health"]))


class TestResolve:
    """Tests for KeyPolicy.resolve."""

    def test_eligible_request(self, policy: KeyPolicy) -> None:
        key = policy.resolve("POST", "/orders", [(KEY_HEADER, "abc123")])

        assert key is not None
        assert key.raw_key == "abc123"
        assert key.storage_key == "idempotency:http:abc123"

    @pytest.mark.parametrize("method", ["post", "PUT", "Patch"])
    def test_eligible_methods_any_case(self, policy: KeyPolicy, method: str) -> None:
        assert policy.resolve(method, "/orders", [(KEY_HEADER, "k")]) is not None

    @pytest.mark.parametrize("method", ["GET", "HEAD", "OPTIONS", "DELETE"])
    def test_ineligible_methods(self, policy: KeyPolicy, method: str) -> None:
        assert policy.resolve(method, "/orders", [(KEY_HEADER, "k")]) is None

    def test_header_name_case_insensitive(self, policy: KeyPolicy) -> None:
        assert policy.resolve("POST", "/orders", [("x-idempotency-key", "k")]) is not None

    def test_missing_header(self, policy: KeyPolicy) -> None:
        assert policy.resolve("POST", "/orders", [("content-type", "application/json")]) is None

    @pytest.mark.parametrize("value", ["", "   ", "\t"])
    def test_blank_header_is_ineligible(self, policy: KeyPolicy, value: str) -> None:
        assert policy.resolve("POST", "/orders", [(KEY_HEADER, value)]) is None

    def test_key_is_stripped(self, policy: KeyPolicy) -> None:
        key = policy.resolve("POST", "/orders", [(KEY_HEADER, "  k1 ")])
        assert key is not None
        assert key.raw_key == "k1"

    def test_over_long_key_is_ineligible(self) -> None:
        policy = KeyPolicy(IdempotencyConfig(max_key_length=8))
        assert policy.resolve("POST", "/orders", [(KEY_HEADER, "x" * 8)]) is not None
        assert policy.resolve("POST", "/orders", [(KEY_HEADER, "x" * 9)]) is None

    @pytest.mark.parametrize("path", ["/webhooks/stripe", "/health"])
    def test_disabled_paths(self, policy: KeyPolicy, path: str) -> None:
        assert policy.resolve("POST", path, [(KEY_HEADER, "k")]) is None

    def test_route_opt_out(self, policy: KeyPolicy) -> None:
        assert policy.resolve("POST", "/orders", [(KEY_HEADER, "k")], opt_out=True) is None

    def test_disabled_globally(self) -> None:
        policy = KeyPolicy(IdempotencyConfig(enabled=False))
        assert policy.resolve("POST", "/orders", [(KEY_HEADER, "k")]) is None

    def test_custom_header_and_namespace(self) -> None:
        policy = KeyPolicy(IdempotencyConfig(header_name="Idempotency-Key", key_namespace="orders"))

        assert policy.resolve("POST", "/orders", [(KEY_HEADER, "k")]) is None
        key = policy.resolve("POST", "/orders", [("Idempotency-Key", "k")])
        assert key is not None
        assert key.storage_key == "orders:k"

    @given(raw=st.text(alphabet=st.characters(blacklist_categories=("Cs",)), max_size=300))
    def test_resolved_keys_are_trimmed_and_bounded(self, raw: str) -> None:
        """Whatever the header holds, a resolved key is non-blank, stripped and within bounds."""
        policy = KeyPolicy(IdempotencyConfig())
        key = policy.resolve("POST", "/orders", [(KEY_HEADER, raw)])

        stripped = raw.strip()
        if not stripped or len(stripped) > 255:
            assert key is None
        else:
            assert key is not None
            assert key.raw_key == stripped


class TestDisableIdempotency:
    """Tests for the route opt-out decorator."""

    def test_marks_endpoint(self) -> None:
        @disable_idempotency
        async def audit_order() -> dict:
            return {}

        assert is_idempotency_disabled(audit_order)

    def test_unmarked_endpoint(self) -> None:
        async def create_order() -> dict:
            return {}

        assert not is_idempotency_disabled(create_order)
        assert not is_idempotency_disabled(None)

    def test_returns_same_function(self) -> None:
        def handler() -> None:
            return None

        assert disable_idempotency(handler) is handler
