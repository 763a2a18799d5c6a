"""Unit tests for the shared token stores."""

from __future__ import annotations

import typing as typ
from unittest import mock

import fakeredis
import pytest
from fakeredis import aioredis as fake_aioredis

from appsync_broadcaster.config import CacheConfig
from appsync_broadcaster.errors import ConfigError
from appsync_broadcaster.token_store import (
    MemoryTokenStore,
    RedisTokenStore,
    TokenStore,
    create_token_store,
)

if typ.TYPE_CHECKING:
    from tests.helpers.fakes import FakeClock


class TestMemoryTokenStore:
    """Tests for the in-process store."""

    async def test_put_then_get(self, fake_clock: FakeClock) -> None:
        """Stored values are returned until they expire."""
        store = MemoryTokenStore(clock=fake_clock.monotonic)

        await store.put("key", "value", 10)
        fake_clock.advance(9.5)

        assert await store.get("key") == "value"

    async def test_entry_expires(self, fake_clock: FakeClock) -> None:
        """Entries are gone once the TTL has elapsed."""
        store = MemoryTokenStore(clock=fake_clock.monotonic)

        await store.put("key", "value", 10)
        fake_clock.advance(10)

        assert await store.get("key") is None

    async def test_forget(self, fake_clock: FakeClock) -> None:
        """Forgetting removes the entry; forgetting twice is harmless."""
        store = MemoryTokenStore(clock=fake_clock.monotonic)
        await store.put("key", "value", 10)

        await store.forget("key")
        await store.forget("key")

        assert await store.get("key") is None

    async def test_put_overwrites(self, fake_clock: FakeClock) -> None:
        """A later put replaces value and expiry."""
        store = MemoryTokenStore(clock=fake_clock.monotonic)
        await store.put("key", "old", 1)

        await store.put("key", "new", 100)
        fake_clock.advance(50)

        assert await store.get("key") == "new"

    async def test_aclose_keeps_entries(self) -> None:
        """Closing the in-process store is a no-op."""
        store = MemoryTokenStore()
        await store.put("key", "tok", 60)

        await store.aclose()

        assert await store.get("key") == "tok"


class TestRedisTokenStore:
    """Tests for the Redis-backed store using fakeredis."""

    async def test_round_trip_sets_expiry(self) -> None:
        """Values are stored with a Redis TTL."""
        client = fake_aioredis.FakeRedis(decode_responses=True)
        store = RedisTokenStore(client)

        await store.put("appsync_broadcast_auth_token", "tok", 3540)

        assert await store.get("appsync_broadcast_auth_token") == "tok"
        ttl = await client.ttl("appsync_broadcast_auth_token")
        assert 0 < ttl <= 3540

    async def test_bytes_are_decoded(self) -> None:
        """Clients without ``decode_responses`` still yield strings."""
        store = RedisTokenStore(fake_aioredis.FakeRedis())

        await store.put("key", "tok", 60)

        assert await store.get("key") == "tok"

    async def test_forget_and_missing(self) -> None:
        """Forgotten and unknown keys read as ``None``."""
        store = RedisTokenStore(fake_aioredis.FakeRedis(decode_responses=True))
        await store.put("key", "tok", 60)

        await store.forget("key")

        assert await store.get("key") is None
        assert await store.get("unknown") is None

    async def test_shared_between_instances(self) -> None:
        """Two stores over one server see the same token."""
        server = fakeredis.FakeServer()
        writer = RedisTokenStore(fake_aioredis.FakeRedis(server=server))
        reader = RedisTokenStore(fake_aioredis.FakeRedis(server=server))

        await writer.put("key", "shared", 60)

        assert await reader.get("key") == "shared"

    @pytest.mark.parametrize("owns_client", [True, False])
    async def test_aclose_respects_ownership(self, owns_client: bool) -> None:
        """Only a client the store owns is closed."""
        client = mock.AsyncMock()
        store = RedisTokenStore(client, owns_client=owns_client)

        await store.aclose()

        assert client.aclose.await_count == int(owns_client)


class TestCreateTokenStore:
    """Tests for driver selection."""

    def test_memory_driver(self) -> None:
        """The memory driver yields an in-process store."""
        store = create_token_store(CacheConfig(driver="memory", prefix="p_"))

        assert isinstance(store, MemoryTokenStore)
        assert isinstance(store, TokenStore)

    def test_redis_driver(self) -> None:
        """The redis driver yields a store owning its client."""
        store = create_token_store(
            CacheConfig(driver="redis", prefix="p_", url="redis://localhost:6379/0")
        )

        assert isinstance(store, RedisTokenStore)

    def test_redis_driver_requires_url(self) -> None:
        """The redis driver without a URL is a configuration error."""
        with pytest.raises(ConfigError, match="cache.url"):
            create_token_store(CacheConfig(driver="redis", prefix="p_"))
