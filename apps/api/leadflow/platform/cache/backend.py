from __future__ import annotations

import json
import time
from collections.abc import Callable
from threading import Lock
from typing import Any, Protocol

import redis


class CacheBackend(Protocol):
    """Key/value store for JSON-compatible aggregate snapshots."""

    def get(self, key: str) -> Any | None:
        ...

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class RedisCacheBackend:
    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> RedisCacheBackend:
        return cls(redis.Redis.from_url(url, decode_responses=True, socket_timeout=2.0))

    def get(self, key: str) -> Any | None:
        raw = self._client.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        self._client.set(key, json.dumps(value, default=str), ex=ttl_seconds)

    def delete(self, key: str) -> None:
        self._client.delete(key)


class InMemoryCacheBackend:
    """Process-local cache with per-key expiry; values are stored JSON-encoded."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[float, str]] = {}
        self._lock = Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, raw = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
        return json.loads(raw)

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        raw = json.dumps(value, default=str)
        with self._lock:
            self._entries[key] = (self._clock() + ttl_seconds, raw)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
