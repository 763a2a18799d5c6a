"""Unit tests for the Cognito credential cache."""

from __future__ import annotations

import dataclasses as dc
import datetime as dt
import typing as typ
from urllib.parse import parse_qs

import httpx
import pytest

from appsync_broadcaster.credentials import (
    Credential,
    CredentialCache,
    StoredToken,
    cache_ttl_for,
)
from appsync_broadcaster.errors import AuthError
from appsync_broadcaster.token_store import MemoryTokenStore
from tests.helpers.fakes import FIXED_NOW, RecordingStore

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    from unittest import mock

    from appsync_broadcaster.config import BroadcasterConfig
    from appsync_broadcaster.token_store import TokenStore
    from tests.helpers.fakes import FakeClock

_CACHE_KEY = "appsync_broadcast_auth_token"


@dc.dataclass(slots=True)
class TokenEndpoint:
    """Scripted Cognito token endpoint."""

    responses: list[httpx.Response | Exception]
    requests: list[httpx.Request] = dc.field(default_factory=list)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if len(self.responses) > 1:
            outcome = self.responses.pop(0)
        else:
            outcome = self.responses[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    @property
    def calls(self) -> int:
        return len(self.requests)


def _token_response(
    token: str = "tok-1", expires_in: int | None = 3600
) -> httpx.Response:
    body: dict[str, object] = {"access_token": token, "token_type": "Bearer"}
    if expires_in is not None:
        body["expires_in"] = expires_in
    return httpx.Response(200, json=body)


def _stored(token: str, expires_in: float) -> str:
    expires_at = FIXED_NOW + dt.timedelta(seconds=expires_in)
    return StoredToken(access_token=token, expires_at=expires_at).encode()


@pytest.fixture
def store() -> RecordingStore:
    """Return a store recording writes."""
    return RecordingStore()


@pytest.fixture
def make_cache(
    config: BroadcasterConfig,
    store: RecordingStore,
    event_logger: mock.MagicMock,
    fake_clock: FakeClock,
) -> cabc.Callable[..., CredentialCache]:
    """Return a factory building caches over a scripted endpoint."""

    def _make(
        endpoint: TokenEndpoint, *, token_store: TokenStore | None = None
    ) -> CredentialCache:
        return CredentialCache(
            config,
            token_store or store,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(endpoint)),
            event_logger=event_logger,
            clock=fake_clock.now,
        )

    return _make


class TestFetchNewToken:
    """Tests for requests to the token endpoint."""

    async def test_posts_client_credentials(
        self, make_cache: cabc.Callable[..., CredentialCache]
    ) -> None:
        """The request is a form-encoded client-credentials grant."""
        endpoint = TokenEndpoint([_token_response()])

        token = await make_cache(endpoint).fetch_new_token()

        assert token == "tok-1"
        request = endpoint.requests[0]
        assert request.method == "POST"
        assert str(request.url) == (
            "https://test-pool.auth.us-east-1.amazoncognito.com/oauth2/token"
        )
        assert request.headers["content-type"] == "application/x-www-form-urlencoded"
        form = parse_qs(request.content.decode())
        assert form == {
            "grant_type": ["client_credentials"],
            "scope": ["default-m2m-resource-server-l0ryrn/read"],
            "client_id": ["test-client-id"],
            "client_secret": ["test-client-secret"],
        }

    async def test_stores_token_with_buffered_ttl(
        self,
        make_cache: cabc.Callable[..., CredentialCache],
        store: RecordingStore,
        event_logger: mock.MagicMock,
    ) -> None:
        """A one-hour token is cached for 3540 seconds."""
        await make_cache(TokenEndpoint([_token_response()])).fetch_new_token()

        assert [(key, ttl) for key, _, ttl in store.puts] == [(_CACHE_KEY, 3540)]
        assert StoredToken.decode(store.puts[0][1]) == StoredToken(
            access_token="tok-1", expires_at=FIXED_NOW + dt.timedelta(hours=1)
        )
        event_logger.log_token_fetched.assert_called_once_with(
            expires_in=3600, ttl_seconds=3540
        )

    async def test_missing_expires_in_defaults_to_one_hour(
        self,
        make_cache: cabc.Callable[..., CredentialCache],
        store: RecordingStore,
    ) -> None:
        """Responses without ``expires_in`` are treated as one hour."""
        await make_cache(
            TokenEndpoint([_token_response(expires_in=None)])
        ).fetch_new_token()

        assert store.puts[0][2] == 3540

    async def test_short_lived_token_ttl_is_clamped(
        self,
        make_cache: cabc.Callable[..., CredentialCache],
        store: RecordingStore,
    ) -> None:
        """Tokens shorter than the buffer are cached for one second."""
        await make_cache(
            TokenEndpoint([_token_response(expires_in=30)])
        ).fetch_new_token()

        assert store.puts[0][2] == 1

    async def test_error_status(
        self, make_cache: cabc.Callable[..., CredentialCache], store: RecordingStore
    ) -> None:
        """Non-2xx responses raise with the status and write nothing."""
        endpoint = TokenEndpoint(
            [httpx.Response(400, json={"error": "invalid_client"})]
        )

        with pytest.raises(AuthError, match=r"HTTP 400") as excinfo:
            await make_cache(endpoint).fetch_new_token()

        assert excinfo.value.status_code == 400
        assert store.puts == []

    async def test_missing_access_token(
        self, make_cache: cabc.Callable[..., CredentialCache], store: RecordingStore
    ) -> None:
        """A 200 without a token is an authentication failure."""
        endpoint = TokenEndpoint([httpx.Response(200, json={"expires_in": 3600})])

        with pytest.raises(AuthError, match="No access token received from Cognito"):
            await make_cache(endpoint).fetch_new_token()

        assert store.puts == []

    async def test_undecodable_body(
        self, make_cache: cabc.Callable[..., CredentialCache]
    ) -> None:
        """A body that is not JSON is reported as such."""
        endpoint = TokenEndpoint([httpx.Response(200, text="<html>oops</html>")])

        with pytest.raises(AuthError, match="could not be decoded"):
            await make_cache(endpoint).fetch_new_token()

    async def test_network_error(
        self, make_cache: cabc.Callable[..., CredentialCache]
    ) -> None:
        """Connection failures surface as ``AuthError``."""
        endpoint = TokenEndpoint([httpx.ConnectError("connection refused")])

        with pytest.raises(AuthError, match="unreachable: connection refused"):
            await make_cache(endpoint).fetch_new_token()


class TestGetToken:
    """Tests for the two-tier lookup."""

    async def test_in_process_hit(
        self, make_cache: cabc.Callable[..., CredentialCache]
    ) -> None:
        """A fresh token is reused without another request."""
        endpoint = TokenEndpoint([_token_response()])
        cache = make_cache(endpoint)

        assert await cache.get_token() == "tok-1"
        assert await cache.get_token() == "tok-1"
        assert endpoint.calls == 1

    async def test_shared_store_hit(
        self,
        make_cache: cabc.Callable[..., CredentialCache],
        store: RecordingStore,
    ) -> None:
        """A token written by another instance is used as-is."""
        store.values[_CACHE_KEY] = _stored("shared-token", 600)
        endpoint = TokenEndpoint([_token_response()])

        assert await make_cache(endpoint).get_token() == "shared-token"
        assert endpoint.calls == 0

    async def test_shared_store_hit_expires(
        self,
        make_cache: cabc.Callable[..., CredentialCache],
        store: RecordingStore,
        fake_clock: FakeClock,
    ) -> None:
        """A token taken from the store is refreshed once it expires."""
        store.values[_CACHE_KEY] = _stored("shared-token", 600)
        endpoint = TokenEndpoint([_token_response("fresh")])
        cache = make_cache(endpoint)
        assert await cache.get_token() == "shared-token"

        store.values.clear()
        fake_clock.advance(24 * 3600)

        assert await cache.get_token() == "fresh"
        assert endpoint.calls == 1

    async def test_store_entry_near_expiry_is_replaced(
        self,
        make_cache: cabc.Callable[..., CredentialCache],
        store: RecordingStore,
    ) -> None:
        """A stored token inside the refresh buffer is not served."""
        store.values[_CACHE_KEY] = _stored("shared-token", 30)
        endpoint = TokenEndpoint([_token_response("fresh")])

        assert await make_cache(endpoint).get_token() == "fresh"
        assert endpoint.calls == 1

    async def test_unreadable_store_entry_is_replaced(
        self,
        make_cache: cabc.Callable[..., CredentialCache],
        store: RecordingStore,
    ) -> None:
        """Entries without an expiry are treated as misses."""
        store.values[_CACHE_KEY] = "bare-token"
        endpoint = TokenEndpoint([_token_response("fresh")])

        assert await make_cache(endpoint).get_token() == "fresh"
        assert StoredToken.decode(store.values[_CACHE_KEY]) is not None

    async def test_invalidate_forces_refetch(
        self,
        make_cache: cabc.Callable[..., CredentialCache],
        store: RecordingStore,
    ) -> None:
        """Invalidation clears both tiers."""
        endpoint = TokenEndpoint([_token_response("tok-1"), _token_response("tok-2")])
        cache = make_cache(endpoint)
        await cache.get_token()

        await cache.invalidate()

        assert store.forgotten == [_CACHE_KEY]
        assert await cache.get_token() == "tok-2"
        assert endpoint.calls == 2

    async def test_expired_token_is_refetched(
        self,
        make_cache: cabc.Callable[..., CredentialCache],
        fake_clock: FakeClock,
    ) -> None:
        """Tokens inside the refresh buffer are replaced."""
        endpoint = TokenEndpoint([_token_response("tok-1"), _token_response("tok-2")])
        cache = make_cache(
            endpoint, token_store=MemoryTokenStore(fake_clock.monotonic)
        )
        await cache.get_token()

        fake_clock.advance(3539)
        assert await cache.get_token() == "tok-1"

        fake_clock.advance(2)
        assert await cache.get_token() == "tok-2"
        assert endpoint.calls == 2

    async def test_failure_is_logged_with_status(
        self,
        make_cache: cabc.Callable[..., CredentialCache],
        event_logger: mock.MagicMock,
    ) -> None:
        """Token failures are logged before propagating."""
        endpoint = TokenEndpoint([httpx.Response(503, text="unavailable")])

        with pytest.raises(AuthError) as excinfo:
            await make_cache(endpoint).get_token()

        event_logger.log_token_fetch_failed.assert_called_once_with(
            error=excinfo.value, status_code=503
        )

    async def test_store_failure_propagates(
        self,
        config: BroadcasterConfig,
        event_logger: mock.MagicMock,
    ) -> None:
        """Unexpected store errors are logged and re-raised."""

        class BrokenStore(RecordingStore):
            async def get(self, key: str) -> str | None:
                raise ConnectionError(key)

        cache = CredentialCache(
            config,
            BrokenStore(),
            http_client=httpx.AsyncClient(
                transport=httpx.MockTransport(TokenEndpoint([_token_response()]))
            ),
            event_logger=event_logger,
        )

        with pytest.raises(ConnectionError):
            await cache.get_token()

        event_logger.log_token_fetch_failed.assert_called_once()


async def test_injected_client_is_not_closed(
    config: BroadcasterConfig, store: RecordingStore
) -> None:
    """Only clients created by the cache are closed."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(TokenEndpoint([])))
    cache = CredentialCache(config, store, http_client=client)

    await cache.aclose()

    assert not client.is_closed
    assert not store.closed
    await client.aclose()


async def test_owned_store_is_closed(
    config: BroadcasterConfig, store: RecordingStore
) -> None:
    """A store handed over with ownership is closed with the cache."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(TokenEndpoint([])))
    cache = CredentialCache(config, store, http_client=client, owns_store=True)

    await cache.aclose()

    assert store.closed
    await client.aclose()


def test_credential_freshness_buffer() -> None:
    """A credential stops being fresh sixty seconds before expiry."""
    credential = Credential(
        token="tok",
        expires_at=FIXED_NOW.replace(hour=13),
    )

    assert credential.is_fresh(FIXED_NOW.replace(minute=58, second=59))
    assert not credential.is_fresh(FIXED_NOW.replace(minute=59))
    assert Credential(token="tok").is_fresh(FIXED_NOW)


@pytest.mark.parametrize(
    ("expires_in", "ttl"),
    [(3600, 3540), (61, 1), (60, 1), (0, 1), (7200, 7140)],
)
def test_cache_ttl_for(expires_in: int, ttl: int) -> None:
    """Cache TTLs keep a sixty second buffer with a one second floor."""
    assert cache_ttl_for(expires_in) == ttl
