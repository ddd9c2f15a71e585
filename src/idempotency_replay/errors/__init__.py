"""Error payload caching for failure storms."""

from idempotency_replay.errors.cache import CacheStats, ErrorResponseCache

__all__ = ["CacheStats", "ErrorResponseCache"]
