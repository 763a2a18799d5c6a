"""Cognito client-credentials tokens with a two-tier cache.

``CredentialCache`` serves the bearer token used both to publish events and
to let subscribers open a realtime connection. Lookups go, in order, to an
in-process slot, the shared ``TokenStore`` and finally the Cognito token
endpoint.
"""

from __future__ import annotations

import dataclasses as dc
import datetime as dt
import typing as typ

import httpx
import msgspec

from appsync_broadcaster.common.time import utcnow
from appsync_broadcaster.errors import AuthError
from appsync_broadcaster.observability import BroadcastEventLogger

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from appsync_broadcaster.config import BroadcasterConfig
    from appsync_broadcaster.token_store import TokenStore

TOKEN_BUFFER_S = 60
MIN_TOKEN_TTL_S = 1
DEFAULT_EXPIRES_IN_S = 3600
TOKEN_TIMEOUT_S = 10.0
TOKEN_TRANSPORT_RETRIES = 2


class TokenResponse(msgspec.Struct, kw_only=True):
    """Subset of the OAuth2 token response used here."""

    access_token: str | None = None
    expires_in: int = DEFAULT_EXPIRES_IN_S


class StoredToken(msgspec.Struct, kw_only=True):
    """Shared store entry: the token and the instant it expires upstream."""

    access_token: str
    expires_at: dt.datetime

    def encode(self) -> str:
        """Return the JSON text written to the store."""
        return msgspec.json.encode(self).decode("utf-8")

    @classmethod
    def decode(cls, raw: str) -> StoredToken | None:
        """Parse a store entry; unreadable entries yield ``None``."""
        try:
            return msgspec.json.decode(raw, type=cls)
        except msgspec.DecodeError:
            return None


@dc.dataclass(frozen=True, slots=True)
class Credential:
    """A bearer token and, when known, the instant it expires."""

    token: str
    expires_at: dt.datetime | None = None

    def is_fresh(self, now: dt.datetime) -> bool:
        """Return whether the token is still outside the refresh buffer."""
        if self.expires_at is None:
            return True
        return now < self.expires_at - dt.timedelta(seconds=TOKEN_BUFFER_S)


def cache_ttl_for(expires_in: int) -> int:
    """Return the shared-cache TTL for a token valid ``expires_in`` seconds."""
    return max(expires_in - TOKEN_BUFFER_S, MIN_TOKEN_TTL_S)


class CredentialCache:
    """Obtain and cache Cognito bearer tokens.

    Parameters
    ----------
    config
        Broadcaster configuration; supplies the endpoint, client
        credentials and cache key.
    store
        Shared token store.
    http_client
        Optional client for testing. When omitted the cache owns a client
        with a 10 second timeout and two connection retries.
    event_logger
        Structured event sink.
    clock
        Returns the current aware UTC time.
    owns_store
        Close ``store`` in :meth:`aclose`.

    """

    def __init__(  # noqa: PLR0913
        self,
        config: BroadcasterConfig,
        store: TokenStore,
        *,
        http_client: httpx.AsyncClient | None = None,
        event_logger: BroadcastEventLogger | None = None,
        clock: cabc.Callable[[], dt.datetime] = utcnow,
        owns_store: bool = False,
    ) -> None:
        """Initialise the cache with an empty in-process slot."""
        self._config = config
        self._store = store
        self._owns_store = owns_store
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=TOKEN_TIMEOUT_S,
            transport=httpx.AsyncHTTPTransport(retries=TOKEN_TRANSPORT_RETRIES),
        )
        self._event_logger = event_logger or BroadcastEventLogger()
        self._clock = clock
        self._credential: Credential | None = None

    @property
    def cache_key(self) -> str:
        """Return the shared store key holding the token."""
        return self._config.token_cache_key

    async def get_token(self) -> str:
        """Return a valid bearer token.

        Returns
        -------
        str
            Token from the in-process slot, the shared store, or a fresh
            Cognito request, in that order.

        Raises
        ------
        AuthError
            If a fresh token was needed and could not be issued.

        """
        credential = self._credential
        if credential is not None and credential.is_fresh(self._clock()):
            return credential.token

        try:
            cached = await self._store.get(self.cache_key)
            stored = StoredToken.decode(cached) if cached else None
            if stored is not None:
                credential = Credential(
                    token=stored.access_token, expires_at=stored.expires_at
                )
                if credential.is_fresh(self._clock()):
                    self._credential = credential
                    return credential.token
            return await self.fetch_new_token()
        except AuthError as exc:
            self._event_logger.log_token_fetch_failed(
                error=exc, status_code=exc.status_code
            )
            raise
        except Exception as exc:
            self._event_logger.log_token_fetch_failed(error=exc)
            raise

    async def fetch_new_token(self) -> str:
        """Request a token from Cognito and cache it in both tiers.

        Raises
        ------
        AuthError
            If the endpoint is unreachable, answers with a non-2xx status,
            or omits ``access_token``.

        """
        response = await self._request_token()
        if not response.is_success:
            raise AuthError.token_request_failed(response.status_code, response.text)

        try:
            parsed = msgspec.json.decode(response.content, type=TokenResponse)
        except msgspec.DecodeError as exc:
            raise AuthError.invalid_response(response.text) from exc

        if not parsed.access_token:
            raise AuthError.missing_access_token(response.text)

        ttl_seconds = cache_ttl_for(parsed.expires_in)
        expires_at = self._clock() + dt.timedelta(seconds=parsed.expires_in)
        entry = StoredToken(access_token=parsed.access_token, expires_at=expires_at)
        await self._store.put(self.cache_key, entry.encode(), ttl_seconds)
        self._credential = Credential(token=parsed.access_token, expires_at=expires_at)
        self._event_logger.log_token_fetched(
            expires_in=parsed.expires_in, ttl_seconds=ttl_seconds
        )
        return parsed.access_token

    async def _request_token(self) -> httpx.Response:
        options = self._config.options
        try:
            return await self._client.post(
                self._config.token_endpoint,
                data={
                    "grant_type": "client_credentials",
                    "scope": options.cognito_scope,
                    "client_id": options.cognito_client_id,
                    "client_secret": options.cognito_client_secret,
                },
            )
        except httpx.RequestError as exc:
            raise AuthError.network_error(str(exc) or type(exc).__name__) from exc

    async def invalidate(self) -> None:
        """Drop the token from the in-process slot and the shared store."""
        self._credential = None
        await self._store.forget(self.cache_key)

    async def aclose(self) -> None:
        """Close the HTTP client and the store when this cache owns them."""
        if self._owns_client:
            await self._client.aclose()
        if self._owns_store:
            await self._store.aclose()


__all__ = [
    "DEFAULT_EXPIRES_IN_S",
    "MIN_TOKEN_TTL_S",
    "TOKEN_BUFFER_S",
    "Credential",
    "CredentialCache",
    "StoredToken",
    "TokenResponse",
    "cache_ttl_for",
]
