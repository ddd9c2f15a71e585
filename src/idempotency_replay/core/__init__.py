"""Request-level idempotency logic.

- key_policy: eligibility and key extraction
- registry: in-flight arbitration between concurrent duplicates
- replay: capture and replay of responses
- interceptor: the per-request pipeline tying the above together
- cleanup: periodic eviction of expired entries

Nothing here depends on a web framework; adapters wrap the interceptor.
"""

from idempotency_replay.core.interceptor import IdempotencyInterceptor, Request
from idempotency_replay.core.key_policy import KeyPolicy, disable_idempotency, is_idempotency_disabled
from idempotency_replay.core.registry import InFlightRegistry
from idempotency_replay.core.replay import ReplayedResponse, capture_response, replay_response

__all__ = [
    "IdempotencyInterceptor",
    "InFlightRegistry",
    "KeyPolicy",
    "ReplayedResponse",
    "Request",
    "capture_response",
    "disable_idempotency",
    "is_idempotency_disabled",
    "replay_response",
]
