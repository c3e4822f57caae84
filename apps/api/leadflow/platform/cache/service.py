from __future__ import annotations

import logging
from collections.abc import Callable
from functools import lru_cache
from typing import Any, TypeVar

from leadflow.core.config import get_settings
from leadflow.metrics import observe_cache_error, observe_cache_hit, observe_cache_miss
from leadflow.platform.cache.backend import CacheBackend, InMemoryCacheBackend, RedisCacheBackend

logger = logging.getLogger("leadflow.cache")

T = TypeVar("T")


def get_or_compute(
    backend: CacheBackend,
    key: str,
    ttl_seconds: int,
    compute: Callable[[], T],
    *,
    aggregate: str = "unknown",
) -> T | Any:
    """Cache-aside read. Backend failures degrade to a live computation.

    Nothing invalidates these keys on write; staleness is bounded by the TTL.
    """
    try:
        cached = backend.get(key)
    except Exception as exc:
        observe_cache_error("get")
        logger.warning("cache.get_failed", extra={"cache_key": key, "error": str(exc)})
        cached = None

    if cached is not None:
        observe_cache_hit(aggregate)
        return cached

    observe_cache_miss(aggregate)
    value = compute()
    try:
        backend.set(key, value, ttl_seconds)
    except Exception as exc:
        observe_cache_error("set")
        logger.warning("cache.set_failed", extra={"cache_key": key, "error": str(exc)})
    return value


@lru_cache
def get_cache_backend() -> CacheBackend:
    settings = get_settings()
    if settings.cache_backend == "memory":
        return InMemoryCacheBackend()
    return RedisCacheBackend.from_url(settings.redis_url)
