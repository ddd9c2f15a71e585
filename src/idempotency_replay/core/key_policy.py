"""Eligibility and key extraction for inbound requests.

A request is handled by the idempotency engine only when all of these hold,
checked in this order:

1. Its route handler is not marked with :func:`disable_idempotency`
2. Its path matches none of the configured ``disabled_paths`` patterns
3. Its method is one of the configured ``enabled_methods`` (POST/PUT/PATCH)
4. It carries a non-blank idempotency header no longer than ``max_key_length``

Idempotency is opt-in per request: a missing, blank or over-long header makes
the request ineligible, it is never rejected on that basis.

Examples:
    Opting a route out::

        @app.post("/webhooks/replay")
        @disable_idempotency
        async def replay_webhook(): ...

    Resolving a key::

        policy = KeyPolicy(IdempotencyConfig())
        key = policy.resolve("POST", "/orders", [("X-Idempotency-Key", "abc123")])
        key.storage_key  # 'idempotency:http:abc123'
"""

from collections.abc import Callable, Iterable
from fnmatch import fnmatchcase
from typing import Any, TypeVar

from idempotency_replay.config import IdempotencyConfig
from idempotency_replay.models import IdempotencyKey
from idempotency_replay.utils.headers import get_header_value

DISABLED_ATTRIBUTE = "__idempotency_disabled__"

F = TypeVar("F", bound=Callable[..., Any])


def disable_idempotency(endpoint: F) -> F:
    """Mark a route handler as never eligible for idempotency handling."""
    setattr(endpoint, DISABLED_ATTRIBUTE, True)
    return endpoint


def is_idempotency_disabled(endpoint: Any) -> bool:
    """Return True if ``endpoint`` was marked with :func:`disable_idempotency`."""
    return endpoint is not None and bool(getattr(endpoint, DISABLED_ATTRIBUTE, False))


class KeyPolicy:
    """Decides eligibility and derives scoped idempotency keys.

    Attributes:
        config: Engine configuration
    """

    def __init__(self, config: IdempotencyConfig) -> None:
        self.config = config
        self._methods = frozenset(config.enabled_methods)
        self._disabled_paths = tuple(config.disabled_paths)

    def is_eligible_method(self, method: str) -> bool:
        return method.upper() in self._methods

    def is_disabled_path(self, path: str) -> bool:
        return any(fnmatchcase(path, pattern) for pattern in self._disabled_paths)

    def extract_raw_key(self, headers: Iterable[tuple[str, str]]) -> str | None:
        """Read the client key from the configured header.

        Returns:
            The stripped key, or None if the header is absent, blank or
            longer than ``max_key_length``.
        """
        value = get_header_value(headers, self.config.header_name)
        if value is None:
            return None

        raw_key = value.strip()
        if not raw_key or len(raw_key) > self.config.max_key_length:
            return None

        return raw_key

    def scope(self, raw_key: str) -> IdempotencyKey:
        return IdempotencyKey(namespace=self.config.key_namespace, raw_key=raw_key)

    def resolve(
        self,
        method: str,
        path: str,
        headers: Iterable[tuple[str, str]],
        opt_out: bool = False,
    ) -> IdempotencyKey | None:
        """Return the scoped key for an eligible request, or None.

        Args:
            method: HTTP method
            path: Request path
            headers: Ordered request headers
            opt_out: True when the matched route handler opted out

        Returns:
            The IdempotencyKey, or None when the request must be forwarded
            untouched.
        """
        if not self.config.enabled or opt_out:
            return None

        if self.is_disabled_path(path):
            return None

        if not self.is_eligible_method(method):
            return None

        raw_key = self.extract_raw_key(headers)
        if raw_key is None:
            return None

        return self.scope(raw_key)
