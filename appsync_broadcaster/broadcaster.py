"""Broadcast events to AppSync channels and authenticate subscribers.

``AppSyncBroadcaster`` is the surface a host application calls:

- ``broadcast(channels, event, payload)`` publishes one event to several
  channels, isolating failures per channel;
- ``auth(request)`` decides whether a subscriber may join a channel and
  returns the credential payload it needs to connect.

Usage
-----
>>> from appsync_broadcaster import (
...     AuthRequest,
...     BroadcasterConfig,
...     ChannelAuthorizer,
...     create_broadcaster,
... )
>>> broadcaster = create_broadcaster(
...     BroadcasterConfig.from_env(),
...     user_resolver=lambda request, channel: request.context,
...     authorizer=ChannelAuthorizer().channel("orders.{id}", lambda user, id: True),
... )
>>> outcome = await broadcaster.broadcast(["orders"], "OrderShipped", {"id": 7})
>>> await broadcaster.auth(AuthRequest("default/private-orders.7", context=user))
{'auth': '...'}

"""

from __future__ import annotations

import asyncio
import dataclasses as dc
import typing as typ

from appsync_broadcaster.common.awaitables import resolve_maybe_awaitable
from appsync_broadcaster.common.time import isoformat_utc, utcnow
from appsync_broadcaster.delivery import BroadcastEnvelope
from appsync_broadcaster.errors import (
    AccessDeniedError,
    AggregateBroadcastError,
    TransportError,
    UnauthorizedError,
)
from appsync_broadcaster.observability import BroadcastEventLogger

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

    from appsync_broadcaster.authorization import (
        AccessDecision,
        Authorizer,
        Identity,
        UserResolver,
    )
    from appsync_broadcaster.channels import ChannelClassifier
    from appsync_broadcaster.config import BroadcasterConfig
    from appsync_broadcaster.credentials import CredentialCache
    from appsync_broadcaster.delivery import DeliveryClient

MAX_RETRY_ATTEMPTS = 3
RETRY_DELAY_S = 0.1


@dc.dataclass(frozen=True, slots=True)
class ChannelFailure:
    """A channel that did not receive a broadcast."""

    channel: str
    error: str


@dc.dataclass(frozen=True, slots=True)
class BroadcastOutcome:
    """Aggregate result of one ``broadcast`` call.

    Attributes
    ----------
    successes
        Number of channels that received the event.
    failures
        Failed channels in broadcast order.

    """

    successes: int = 0
    failures: tuple[ChannelFailure, ...] = ()

    @property
    def failed(self) -> bool:
        """Return whether any channel failed."""
        return bool(self.failures)

    @property
    def all_failed(self) -> bool:
        """Return whether every attempted channel failed."""
        return self.failed and self.successes == 0

    @property
    def partially_failed(self) -> bool:
        """Return whether some, but not all, channels failed."""
        return self.failed and self.successes > 0


@dc.dataclass(frozen=True, slots=True)
class AuthRequest:
    """Inbound subscriber authentication request.

    Attributes
    ----------
    channel_name
        Fully-qualified channel the subscriber wants to join.
    context
        Host request or caller context, passed to the user resolver.

    """

    channel_name: str
    context: object | None = None


@dc.dataclass(frozen=True, slots=True)
class BroadcasterDependencies:
    """Collaborators of ``AppSyncBroadcaster``.

    Attributes
    ----------
    classifier
        Channel classification for the configured namespace.
    credentials
        Bearer token cache.
    delivery
        Gateway delivery client.
    user_resolver
        Host callback resolving the caller of an ``auth`` request.
    authorizer
        Host policy for guarded channels.

    """

    classifier: ChannelClassifier
    credentials: CredentialCache
    delivery: DeliveryClient
    user_resolver: UserResolver
    authorizer: Authorizer


class AppSyncBroadcaster:
    """Publish events to AppSync channels and authenticate subscribers."""

    def __init__(
        self,
        config: BroadcasterConfig,
        dependencies: BroadcasterDependencies,
        *,
        event_logger: BroadcastEventLogger | None = None,
        sleep: cabc.Callable[[float], cabc.Awaitable[object]] = asyncio.sleep,
        clock: cabc.Callable[[], dt.datetime] = utcnow,
    ) -> None:
        """Configure the broadcaster.

        Parameters
        ----------
        config
            Validated configuration.
        dependencies
            Collaborators grouped into a parameter object.
        event_logger
            Structured event sink; a femtologging-backed logger by default.
        sleep
            Awaitable sleep used for retry backoff.
        clock
            Returns the current aware UTC time for envelope timestamps.

        """
        self._config = config
        self._classifier = dependencies.classifier
        self._credentials = dependencies.credentials
        self._delivery = dependencies.delivery
        self._user_resolver = dependencies.user_resolver
        self._authorizer = dependencies.authorizer
        self._event_logger = event_logger or BroadcastEventLogger()
        self._sleep = sleep
        self._clock = clock

    @property
    def config(self) -> BroadcasterConfig:
        """Return the configuration."""
        return self._config

    @property
    def classifier(self) -> ChannelClassifier:
        """Return the channel classifier."""
        return self._classifier

    @property
    def credentials(self) -> CredentialCache:
        """Return the bearer token cache."""
        return self._credentials

    async def broadcast(
        self,
        channels: cabc.Iterable[str],
        event: str,
        payload: cabc.Mapping[str, typ.Any] | None = None,
    ) -> BroadcastOutcome:
        """Publish ``event`` to every channel in ``channels``.

        Channels are processed in order and independently. A 401 from the
        gateway invalidates the token and retries that channel once.

        Parameters
        ----------
        channels
            Channel names without the namespace.
        event
            Application event name.
        payload
            Event data.

        Returns
        -------
        BroadcastOutcome
            Success count and per-channel failures.

        Raises
        ------
        AggregateBroadcastError
            If every channel failed, or if any channel failed in strict
            mode.

        """
        data = dict(payload or {})
        successes = 0
        failures: list[ChannelFailure] = []

        for channel in channels:
            failure = await self._broadcast_isolated(channel, event, data)
            if failure is None:
                successes += 1
            else:
                failures.append(failure)

        outcome = BroadcastOutcome(successes=successes, failures=tuple(failures))
        if outcome.all_failed:
            self._event_logger.log_all_failed(failures=outcome.failures)
            raise AggregateBroadcastError.all_failed(outcome.failures)
        if outcome.partially_failed:
            self._event_logger.log_partial_failure(
                failures=outcome.failures, successes=successes
            )
            if self._config.strict:
                raise AggregateBroadcastError.partial(outcome.failures, successes)
        return outcome

    async def _broadcast_isolated(
        self, channel: str, event: str, data: dict[str, typ.Any]
    ) -> ChannelFailure | None:
        try:
            await self.broadcast_to_channel(channel, event, data)
        except UnauthorizedError:
            return await self._retry_with_fresh_credentials(channel, event, data)
        except Exception as exc:  # noqa: BLE001 - one channel must not abort the rest
            self._event_logger.log_channel_failed(channel=channel, error=exc)
            return ChannelFailure(channel=channel, error=str(exc))
        return None

    async def _retry_with_fresh_credentials(
        self, channel: str, event: str, data: dict[str, typ.Any]
    ) -> ChannelFailure | None:
        self._event_logger.log_credentials_refreshed(channel=channel)
        try:
            await self._credentials.invalidate()
            await self._delivery.reset()
            await self.broadcast_to_channel(channel, event, data)
        except Exception as exc:  # noqa: BLE001 - one channel must not abort the rest
            self._event_logger.log_channel_failed(
                channel=channel, error=exc, after_refresh=True
            )
            return ChannelFailure(channel=channel, error=str(exc))
        return None

    def _envelope(
        self, full_channel: str, event: str, data: dict[str, typ.Any]
    ) -> BroadcastEnvelope:
        return BroadcastEnvelope(
            event=event,
            data=data,
            channel=full_channel,
            timestamp=isoformat_utc(self._clock()),
        )

    async def broadcast_to_channel(
        self,
        channel: str,
        event: str,
        payload: cabc.Mapping[str, typ.Any],
    ) -> None:
        """Deliver ``event`` to one channel, retrying transport failures.

        Up to ``MAX_RETRY_ATTEMPTS`` attempts are made, sleeping
        ``RETRY_DELAY_S * attempt`` between them.

        Raises
        ------
        UnauthorizedError
            Immediately, so the caller can refresh credentials.
        GatewayError
            Immediately; non-2xx responses are not retried.
        TransportError
            After the last attempt failed without a response.

        """
        full_channel = self._classifier.qualify(channel)
        data = dict(payload)
        last_error: TransportError | None = None

        for attempt in range(1, MAX_RETRY_ATTEMPTS + 1):
            try:
                await self._delivery.send(
                    full_channel, self._envelope(full_channel, event, data)
                )
            except TransportError as exc:
                last_error = exc
                if attempt < MAX_RETRY_ATTEMPTS:
                    delay_s = RETRY_DELAY_S * attempt
                    self._event_logger.log_channel_retrying(
                        channel=channel, attempt=attempt, delay_s=delay_s, error=exc
                    )
                    await self._sleep(delay_s)
            else:
                return

        raise TransportError.retries_exhausted(
            channel, MAX_RETRY_ATTEMPTS, last_error
        ) from last_error

    async def auth(self, request: AuthRequest) -> dict[str, object]:
        """Authenticate a subscriber for ``request.channel_name``.

        Returns
        -------
        dict[str, object]
            ``{"auth": True}`` for public channels, ``{"auth": token}`` for
            private channels, and ``{"auth": token, "channel_data": {...}}``
            for presence channels.

        Raises
        ------
        AccessDeniedError
            If a guarded channel is requested without an identity, or the
            authorizer rejects the identity.
        AuthError
            If no token could be issued.

        """
        channel = request.channel_name
        try:
            if not self._classifier.is_guarded(channel):
                return {"auth": True}
            return await self._auth_guarded(request, channel)
        except AccessDeniedError:
            raise
        except Exception as exc:
            self._event_logger.log_auth_failed(channel=channel, error=exc)
            raise

    async def _auth_guarded(
        self, request: AuthRequest, channel: str
    ) -> dict[str, object]:
        normalized = self._classifier.normalize(channel)
        identity = await resolve_maybe_awaitable(
            self._user_resolver(request, normalized)
        )
        if identity is None:
            self._event_logger.log_access_denied(
                channel=channel, reason="no_authenticated_user"
            )
            raise AccessDeniedError.no_identity(channel)

        decision = await self._authorizer.authorize(identity, normalized)
        if decision is None or decision is False:
            self._event_logger.log_access_denied(channel=channel, reason="forbidden")
            raise AccessDeniedError.forbidden(channel)

        token = await self._credentials.get_token()
        if not self._classifier.is_presence(channel):
            return {"auth": token}
        return {
            "auth": token,
            "channel_data": self._presence_data(identity, decision),
        }

    def _presence_data(
        self, identity: Identity, decision: AccessDecision
    ) -> dict[str, object]:
        user_info: dict[str, object] = {}
        if not isinstance(decision, bool) and decision is not None:
            user_info.update(decision)
        user_info["name"] = identity.name
        user_info["timestamp"] = isoformat_utc(self._clock())
        return {"user_id": identity.id, "user_info": user_info}

    async def aclose(self) -> None:
        """Release connections held by the collaborators."""
        await self._delivery.aclose()
        await self._credentials.aclose()


__all__ = [
    "MAX_RETRY_ATTEMPTS",
    "RETRY_DELAY_S",
    "AppSyncBroadcaster",
    "AuthRequest",
    "BroadcastOutcome",
    "BroadcasterDependencies",
    "ChannelFailure",
]
