"""Configuration module for the idempotency replay engine.

This module provides the IdempotencyConfig class that controls which requests
are eligible, how long responses are kept, how concurrent duplicates are
arbitrated and which storage backend is used. Configuration is read once at
startup; there is no hot reload.

Examples:
    Defaults suit a single-process service::

        config = IdempotencyConfig()
        assert config.wait_policy == "wait"

    A fleet of replicas sharing one Redis, answering duplicates with 409::

        config = IdempotencyConfig(
            wait_policy="no-wait",
            storage_adapter="redis",
            redis_url="redis://cache:6379/2",
            key_namespace="orders-api",
        )

    Deployment settings come from IDEMPOTENCY_* variables::

        config = IdempotencyConfig.from_env()
"""

import os
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from idempotency_replay.models import MARKER_SUFFIX

# Methods that are not idempotent at the transport level
ELIGIBLE_HTTP_METHODS = {"POST", "PUT", "PATCH"}

VALID_HTTP_METHODS = {
    "GET",
    "HEAD",
    "POST",
    "PUT",
    "DELETE",
    "CONNECT",
    "OPTIONS",
    "TRACE",
    "PATCH",
}

MAX_TTL_SECONDS = 604800
MAX_WAIT_SECONDS = 300


class IdempotencyConfig(BaseModel):
    """Configuration for the idempotency replay engine.

    Attributes:
        enabled: Master switch. When False every request is forwarded untouched.
        header_name: Request header carrying the client's idempotency key.
            Matched case-insensitively. Default is "X-Idempotency-Key".
        key_namespace: Prefix that scopes this subsystem's entries in a
            backend shared with other cache users.
        enabled_methods: HTTP methods eligible for idempotency handling.
            Must be a subset of POST, PUT, PATCH; read-only methods and
            DELETE are never intercepted.
        disabled_paths: Glob patterns of request paths that opt out of
            idempotency handling regardless of method or header.
        max_key_length: Keys longer than this are treated as absent.
        default_ttl_seconds: How long a captured response is replayable.
            Must be between 1 and 604800 (7 days). Default is 86400 (24 hours).
        wait_policy: How a duplicate that arrives while the first request is
            still executing is handled. "wait" polls until the first finishes
            or the wait timeout passes, "no-wait" answers 409 immediately.
        wait_timeout_seconds: Hard upper bound on the "wait" policy (0-300).
        poll_interval_seconds: Delay between re-checks while waiting.
        in_flight_timeout_seconds: Lifetime of an in-flight marker. A marker
            older than this is abandoned so a crashed execution cannot block
            its key forever.
        cache_status_below: Only responses with a status code strictly below
            this value are stored. Default 500 keeps server errors retryable.
        replay_header: Header added to replayed responses. Empty disables it.
        storage_adapter: Backend for captured responses: "memory" or "redis".
        redis_url: Connection URL for the redis adapter.
        max_entries: Capacity of the bounded memory adapter.
        require_atomic_backend: Refuse to start with a shared backend that
            has no conditional write. When False such a backend is accepted
            with a warning and duplicate suppression becomes best effort.
        error_cache_enabled: Cache rendered error payloads.
        error_cache_ttl_seconds: Lifetime of cached error payloads.
        error_namespace: Prefix for error cache entries.

    Note:
        This class is immutable (frozen=True). Create a new instance if you
        need different settings.
    """

    enabled: bool = Field(default=True, description="Enable idempotency handling")
    header_name: str = Field(
        default="X-Idempotency-Key",
        min_length=1,
        description="Request header carrying the idempotency key",
    )
    key_namespace: str = Field(
        default="idempotency:http",
        min_length=1,
        description="Namespace prefix for idempotency entries",
    )
    enabled_methods: list[str] | str = Field(
        default=["POST", "PUT", "PATCH"],
        description="HTTP methods eligible for idempotency handling",
    )
    disabled_paths: list[str] | str = Field(
        default_factory=list,
        description="Glob patterns of paths that opt out of idempotency handling",
    )
    max_key_length: int = Field(default=255, ge=1, description="Maximum idempotency key length")
    default_ttl_seconds: int = Field(
        default=86400,
        description="Time-to-live in seconds for captured responses (1-604800)",
    )
    wait_policy: Literal["wait", "no-wait"] = Field(
        default="wait",
        description="Policy for concurrent duplicates: 'wait' or 'no-wait'",
    )
    wait_timeout_seconds: float = Field(
        default=30.0,
        description="Maximum time in seconds a duplicate waits for the first execution",
    )
    poll_interval_seconds: float = Field(
        default=0.05,
        gt=0,
        le=5,
        description="Delay between re-checks while waiting",
    )
    in_flight_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        le=3600,
        description="Lifetime of an in-flight marker",
    )
    cache_status_below: int = Field(
        default=500,
        ge=200,
        le=600,
        description="Only responses with a status below this value are stored",
    )
    replay_header: str = Field(
        default="X-Idempotency-Replayed",
        description="Header marking replayed responses (empty to disable)",
    )
    storage_adapter: Literal["memory", "redis"] = Field(
        default="memory",
        description="Type of storage backend for captured responses",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Connection URL for the redis storage adapter",
    )
    max_entries: int = Field(
        default=10000,
        ge=1,
        description="Maximum number of entries held by the memory adapter",
    )
    require_atomic_backend: bool = Field(
        default=True,
        description="Refuse shared backends without conditional writes",
    )
    error_cache_enabled: bool = Field(default=False, description="Cache rendered error payloads")
    error_cache_ttl_seconds: int = Field(
        default=60,
        ge=1,
        le=86400,
        description="Time-to-live in seconds for cached error payloads",
    )
    error_namespace: str = Field(
        default="idempotency:error",
        min_length=1,
        description="Namespace prefix for error cache entries",
    )

    model_config = {"frozen": True}

    @field_validator("enabled_methods", mode="before")
    @classmethod
    def validate_enabled_methods(cls, v: Any) -> list[str]:
        """Uppercase the methods and keep only those that can carry a key.

        Accepts a list or the comma-separated form used in the environment.
        GET, HEAD and the other safe methods are already idempotent, and
        DELETE is left to the application, so only POST, PUT and PATCH pass.
        """
        methods = [method.upper() for method in _split_csv(v, "enabled_methods")]

        unknown = sorted(set(methods) - VALID_HTTP_METHODS)
        if unknown:
            raise ValueError(f"unknown HTTP methods in enabled_methods: {', '.join(unknown)}")

        ineligible = sorted(set(methods) - ELIGIBLE_HTTP_METHODS)
        if ineligible:
            raise ValueError(
                f"{', '.join(ineligible)} cannot be made idempotent; "
                f"choose from {', '.join(sorted(ELIGIBLE_HTTP_METHODS))}"
            )

        return methods

    @field_validator("disabled_paths", mode="before")
    @classmethod
    def validate_disabled_paths(cls, v: Any) -> list[str]:
        return _split_csv(v, "disabled_paths")

    @field_validator("default_ttl_seconds")
    @classmethod
    def validate_default_ttl_seconds(cls, v: int) -> int:
        # A week is the longest a client is expected to keep retrying
        if not 1 <= v <= MAX_TTL_SECONDS:
            raise ValueError(f"default_ttl_seconds must be between 1 and {MAX_TTL_SECONDS} (7 days), got {v}")
        return v

    @field_validator("wait_timeout_seconds")
    @classmethod
    def validate_wait_timeout_seconds(cls, v: float) -> float:
        if not 0 <= v <= MAX_WAIT_SECONDS:
            raise ValueError(f"wait_timeout_seconds must be between 0 and {MAX_WAIT_SECONDS}, got {v}")
        return v

    @field_validator("header_name")
    @classmethod
    def validate_header_name(cls, v: str) -> str:
        if v.strip() != v or " " in v:
            raise ValueError(f"header_name must not contain whitespace, got {v!r}")
        return v

    @model_validator(mode="after")
    def validate_namespaces(self) -> "IdempotencyConfig":
        """Keep captured responses, in-flight markers and error payloads apart.

        Each key space is a prefix; none may start another, otherwise a client
        key or an error path could name an entry of a different kind.
        """
        prefixes = [
            f"{self.key_namespace}:",
            f"{self.key_namespace}{MARKER_SUFFIX}:",
            f"{self.error_namespace}:",
        ]
        for i, prefix in enumerate(prefixes):
            for j, other in enumerate(prefixes):
                if i != j and other.startswith(prefix):
                    raise ValueError(
                        f"key_namespace and error_namespace must differ and not nest: "
                        f"{prefix!r} overlaps {other!r}"
                    )
        return self

    @classmethod
    def from_env(cls, prefix: str = "IDEMPOTENCY_") -> "IdempotencyConfig":
        """Build a configuration from ``<prefix><FIELD_NAME>`` variables.

        Only variables that are set are passed on; every other field keeps
        its default. Values stay strings and pydantic coerces them, so
        booleans accept "true", "yes", "on" and "1" and lists are
        comma-separated.

        Args:
            prefix: Prefix for environment variable names.

        Raises:
            ValidationError: If a variable holds a value the field rejects.
        """
        overrides = {
            name: os.environ[f"{prefix}{name.upper()}"]
            for name in cls.model_fields
            if f"{prefix}{name.upper()}" in os.environ
        }
        return cls(**overrides)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "IdempotencyConfig":
        """Build a configuration from a mapping, e.g. a parsed settings file.

        Raises:
            ValidationError: If the mapping contains invalid values.
        """
        return cls(**config_dict)


def _split_csv(value: Any, field: str) -> list[str]:
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    if not isinstance(value, list):
        raise ValueError(f"{field} must be a list or comma-separated string")
    return list(value)
