"""
Family Assistant — Rate limiter.

Fixed-window limit per key, built on the `limits` package. The counters
live in an injected `limits` async storage, not in this object, so the
storage decides how far the limit reaches: "async+memory://" for one bot
process, "async+redis://..." for several.
"""

from __future__ import annotations

import logging

from limits import RateLimitItemPerSecond
from limits.aio.storage import Storage
from limits.aio.strategies import FixedWindowRateLimiter
from limits.storage import storage_from_string

logger = logging.getLogger(__name__)


def storage_from_uri(uri: str) -> Storage:
    """Build an async `limits` storage from a URI such as "async+memory://"."""
    storage = storage_from_string(uri)
    if not isinstance(storage, Storage):
        raise ValueError(f"Rate limit storage must be async (async+...): {uri!r}")
    return storage


class RateLimiter:
    """Allow at most `limit` hits per key in each `window_seconds` window."""

    def __init__(self, storage: Storage, limit: int, window_seconds: int, prefix: str = "chat") -> None:
        if limit <= 0 or window_seconds <= 0:
            raise ValueError("limit and window_seconds must be positive")
        self._limiter = FixedWindowRateLimiter(storage)
        self._item = RateLimitItemPerSecond(limit, window_seconds)
        self._prefix = prefix

    async def hit(self, key: str) -> bool:
        """Count one request for key. Returns False once the limit is exceeded."""
        allowed = await self._limiter.hit(self._item, self._prefix, key)
        if not allowed:
            logger.warning("Rate limit exceeded for %s (%s)", key, self._item)
        return allowed
