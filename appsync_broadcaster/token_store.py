"""Shared key-value stores for the Cognito bearer token.

The store is what lets several broadcaster instances, possibly in several
processes, reuse one token. Entries carry a TTL so they are evicted before
the token expires upstream.

Two drivers are provided and selected by ``CacheConfig.driver``:

``memory``
    Process-local dictionary with monotonic expiry.
``redis``
    ``redis.asyncio`` client, shared across processes.

"""

from __future__ import annotations

import threading
import time
import typing as typ

import redis.asyncio as redis

from appsync_broadcaster.errors import ConfigError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from appsync_broadcaster.config import CacheConfig


@typ.runtime_checkable
class TokenStore(typ.Protocol):
    """Key-value store with per-entry TTL and atomic get/put."""

    async def get(self, key: str) -> str | None:
        """Return the value stored under ``key`` or ``None``."""
        ...

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store ``value`` under ``key`` for ``ttl_seconds``."""
        ...

    async def forget(self, key: str) -> None:
        """Remove ``key`` if present."""
        ...

    async def aclose(self) -> None:
        """Release connections held by the store."""
        ...


class MemoryTokenStore:
    """In-process token store.

    Parameters
    ----------
    clock
        Monotonic clock returning seconds; injectable for tests.

    """

    def __init__(self, clock: cabc.Callable[[], float] = time.monotonic) -> None:
        """Create an empty store."""
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()

    async def get(self, key: str) -> str | None:
        """Return the unexpired value for ``key``."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store ``value`` until ``ttl_seconds`` have elapsed."""
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl_seconds)

    async def forget(self, key: str) -> None:
        """Drop ``key``."""
        with self._lock:
            self._entries.pop(key, None)

    async def aclose(self) -> None:
        """Nothing to release for an in-process store."""


class RedisTokenStore:
    """Token store backed by Redis.

    Parameters
    ----------
    client
        Async Redis client. Responses may be bytes or str.
    owns_client
        Close ``client`` in :meth:`aclose`.

    """

    def __init__(self, client: redis.Redis, *, owns_client: bool = False) -> None:
        """Wrap an existing client."""
        self._client = client
        self._owns_client = owns_client

    @classmethod
    def from_url(cls, url: str) -> RedisTokenStore:
        """Create a store owning a client connected to ``url``."""
        return cls(redis.from_url(url, decode_responses=True), owns_client=True)

    async def get(self, key: str) -> str | None:
        """Return the value for ``key``."""
        value = await self._client.get(key)
        if value is None:
            return None
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return str(value)

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store ``value`` with a Redis expiry of ``ttl_seconds``."""
        await self._client.set(key, value, ex=ttl_seconds)

    async def forget(self, key: str) -> None:
        """Delete ``key``."""
        await self._client.delete(key)

    async def aclose(self) -> None:
        """Close the client when this store created it."""
        if self._owns_client:
            await self._client.aclose()


def create_token_store(cache: CacheConfig) -> TokenStore:
    """Create the token store selected by ``cache.driver``.

    Raises
    ------
    ConfigError
        If the ``redis`` driver is selected without a URL.

    """
    if cache.driver == "redis":
        if not cache.url:
            raise ConfigError.missing_key("cache.url")
        return RedisTokenStore.from_url(cache.url)
    return MemoryTokenStore()


__all__ = ["MemoryTokenStore", "RedisTokenStore", "TokenStore", "create_token_store"]
