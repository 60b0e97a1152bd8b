"""Shared Redis connection used for nonces and token bookkeeping."""

from __future__ import annotations

from functools import lru_cache

import redis

from beefunded.core.settings import settings


@lru_cache(maxsize=1)
def get_redis() -> redis.Redis:
    """Return the process-wide Redis client.

    Responses are decoded to ``str`` so callers never deal with bytes.
    """
    return redis.from_url(settings.redis_url, decode_responses=True)
