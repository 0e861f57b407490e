"""TTL key/value cache stores.

Used for provider health-check results, reference -> provider session
entries, and rate-limit counters.
"""

import json
import threading
import time
from typing import Any, Protocol

import redis
import structlog

logger = structlog.get_logger(__name__)


class CacheStore(Protocol):
    """Minimal TTL cache interface."""

    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None: ...

    def delete(self, key: str) -> None: ...

    def increment(self, key: str, ttl_seconds: int | None = None) -> int: ...

    def ttl(self, key: str) -> int | None: ...


class InMemoryCache:
    """Process-local cache with monotonic-clock expiry."""

    def __init__(self) -> None:
        self._data: dict[str, tuple[Any, float | None]] = {}
        self._lock = threading.Lock()

    def _live(self, key: str) -> tuple[Any, float | None] | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry[1] is not None and entry[1] <= time.monotonic():
            del self._data[key]
            return None
        return entry

    def get(self, key: str) -> Any:
        with self._lock:
            entry = self._live(key)
            return entry[0] if entry else None

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        expires_at = time.monotonic() + ttl_seconds if ttl_seconds else None
        with self._lock:
            self._data[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def increment(self, key: str, ttl_seconds: int | None = None) -> int:
        """Increment a counter; the TTL is set when the counter is created."""
        with self._lock:
            entry = self._live(key)
            if entry is None:
                expires_at = time.monotonic() + ttl_seconds if ttl_seconds else None
                self._data[key] = (1, expires_at)
                return 1
            value = int(entry[0]) + 1
            self._data[key] = (value, entry[1])
            return value

    def ttl(self, key: str) -> int | None:
        with self._lock:
            entry = self._live(key)
            if entry is None or entry[1] is None:
                return None
            return max(0, int(entry[1] - time.monotonic()))

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


class RedisCache:
    """Redis-backed cache; values are stored as JSON."""

    def __init__(self, client: redis.Redis, prefix: str = "payment_gateway:") -> None:
        self.client = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = "payment_gateway:") -> "RedisCache":
        return cls(redis.Redis.from_url(url, decode_responses=True), prefix=prefix)

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get(self, key: str) -> Any:
        raw = self.client.get(self._key(key))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            return raw

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        self.client.set(self._key(key), json.dumps(value, default=str), ex=ttl_seconds or None)

    def delete(self, key: str) -> None:
        self.client.delete(self._key(key))

    def increment(self, key: str, ttl_seconds: int | None = None) -> int:
        value = int(self.client.incr(self._key(key)))
        if value == 1 and ttl_seconds:
            self.client.expire(self._key(key), ttl_seconds)
        return value

    def ttl(self, key: str) -> int | None:
        remaining = self.client.ttl(self._key(key))
        return remaining if remaining is not None and remaining >= 0 else None
