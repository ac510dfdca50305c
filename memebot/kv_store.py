"""Key-value store backends shared by every cache in the lookup core.

Two backends implement the same small async surface:

* :class:`RedisStore` wraps an explicitly constructed ``redis.asyncio`` client.
  Backend failures are logged and turned into safe defaults so that an outage
  only disables caching instead of breaking the caller.
* :class:`MemoryStore` keeps values in-process with TTLs driven by an
  injectable clock; it backs local runs without Redis and the test-suite.
"""

from __future__ import annotations

import asyncio
import fnmatch
import logging
import time
from typing import Callable, Protocol, runtime_checkable

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> bool: ...

    async def delete(self, key: str) -> int: ...

    async def keys(self, pattern: str) -> list[str]: ...

    async def ttl(self, key: str) -> int | None: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


def make_key(prefix: str, namespace: str, key: str = "") -> str:
    """Build ``prefix:namespace:key``; components never share a namespace."""

    parts = [part for part in (prefix, namespace) if part]
    base = ":".join(parts)
    return f"{base}:{key}" if key else base


class RedisStore:
    """Redis backend; every command degrades to a safe default on failure."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client
        self.last_error: str | None = None

    @classmethod
    def from_url(cls, url: str) -> "RedisStore":
        return cls(redis.from_url(url, decode_responses=True))

    async def _run(self, op: str, key: str, coro, default):
        try:
            result = await coro
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            self.last_error = f"{exc.__class__.__name__}: {exc}"
            logger.warning("redis %s failed key=%s error=%s", op, key, self.last_error)
            return default
        self.last_error = None
        return result

    async def get(self, key: str) -> str | None:
        raw = await self._run("get", key, self._client.get(key), None)
        if isinstance(raw, bytes):
            return raw.decode("utf-8")
        return raw

    async def set(self, key: str, value: str, ttl_seconds: int) -> bool:
        result = await self._run("set", key, self._client.set(key, value, ex=max(int(ttl_seconds), 1)), False)
        return bool(result)

    async def delete(self, key: str) -> int:
        return int(await self._run("delete", key, self._client.delete(key), 0))

    async def keys(self, pattern: str) -> list[str]:
        async def _scan() -> list[str]:
            found: list[str] = []
            async for item in self._client.scan_iter(match=pattern, count=500):
                found.append(item.decode("utf-8") if isinstance(item, bytes) else item)
            return found

        return await self._run("scan", pattern, _scan(), [])

    async def ttl(self, key: str) -> int | None:
        remaining = await self._run("ttl", key, self._client.ttl(key), None)
        if remaining is None or remaining < 0:
            return None
        return int(remaining)

    async def ping(self) -> bool:
        return bool(await self._run("ping", "-", self._client.ping(), False))

    async def close(self) -> None:
        """Close the underlying Redis client."""

        try:
            await self._client.aclose()
        except (RedisError, OSError):  # pragma: no cover - best effort on shutdown
            logger.warning("redis close failed", exc_info=True)


class MemoryStore:
    """In-process store honouring TTLs against an injectable clock."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._data: dict[str, tuple[str, float]] = {}

    def _purge(self, key: str) -> None:
        item = self._data.get(key)
        if item is not None and item[1] <= self._clock():
            self._data.pop(key, None)

    async def get(self, key: str) -> str | None:
        self._purge(key)
        item = self._data.get(key)
        return item[0] if item else None

    async def set(self, key: str, value: str, ttl_seconds: int) -> bool:
        if not isinstance(value, str):
            raise TypeError("MemoryStore only stores strings")
        self._data[key] = (value, self._clock() + max(int(ttl_seconds), 1))
        return True

    async def delete(self, key: str) -> int:
        self._purge(key)
        return 1 if self._data.pop(key, None) is not None else 0

    async def keys(self, pattern: str) -> list[str]:
        for key in list(self._data):
            self._purge(key)
        return [key for key in self._data if fnmatch.fnmatchcase(key, pattern)]

    async def ttl(self, key: str) -> int | None:
        self._purge(key)
        item = self._data.get(key)
        if item is None:
            return None
        return max(0, int(round(item[1] - self._clock())))

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._data.clear()


__all__ = ["KeyValueStore", "MemoryStore", "RedisStore", "make_key"]
