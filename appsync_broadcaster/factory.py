"""Assemble an ``AppSyncBroadcaster`` from configuration.

``create_broadcaster`` validates the configuration first, so a bad
configuration fails with ``ConfigError`` before any client is created.

Usage
-----
Build a broadcaster for a host application::

    from appsync_broadcaster.factory import create_broadcaster

    broadcaster = create_broadcaster(
        settings["broadcasting"]["appsync"],
        user_resolver=resolve_user,
        authorizer=channel_rules,
    )

"""

from __future__ import annotations

import collections.abc as cabc
import typing as typ

from appsync_broadcaster.authorization import ChannelAuthorizer
from appsync_broadcaster.broadcaster import AppSyncBroadcaster, BroadcasterDependencies
from appsync_broadcaster.channels import ChannelClassifier
from appsync_broadcaster.config import BroadcasterConfig
from appsync_broadcaster.credentials import CredentialCache
from appsync_broadcaster.delivery import AppSyncDeliveryClient
from appsync_broadcaster.observability import BroadcastEventLogger
from appsync_broadcaster.token_store import create_token_store

if typ.TYPE_CHECKING:
    import httpx

    from appsync_broadcaster.authorization import Authorizer, UserResolver
    from appsync_broadcaster.token_store import TokenStore

__all__ = ["create_broadcaster"]


def _anonymous(request: object, channel: str) -> None:
    """Resolve every caller as anonymous."""
    del request, channel


def create_broadcaster(  # noqa: PLR0913
    config: BroadcasterConfig | cabc.Mapping[str, object],
    *,
    user_resolver: UserResolver | None = None,
    authorizer: Authorizer | None = None,
    token_store: TokenStore | None = None,
    event_logger: BroadcastEventLogger | None = None,
    token_http_client: httpx.AsyncClient | None = None,
    delivery_transport: httpx.AsyncBaseTransport | None = None,
) -> AppSyncBroadcaster:
    """Build a broadcaster and its collaborators.

    Parameters
    ----------
    config
        A ``BroadcasterConfig`` or the nested mapping accepted by
        ``BroadcasterConfig.from_mapping``.
    user_resolver
        Host callback resolving the caller of ``auth`` requests. Without
        one every caller is anonymous, so guarded channels are refused.
    authorizer
        Host policy for guarded channels. Defaults to an empty
        ``ChannelAuthorizer``, which denies every guarded channel.
    token_store
        Shared token store; built from ``config.cache`` when omitted, in
        which case the broadcaster closes it in ``aclose``.
    event_logger
        Structured event sink shared by all collaborators.
    token_http_client
        Optional httpx client for the Cognito token endpoint.
    delivery_transport
        Optional httpx transport for gateway requests.

    Returns
    -------
    AppSyncBroadcaster
        Broadcaster ready for ``broadcast`` and ``auth`` calls.

    Raises
    ------
    ConfigError
        If the configuration is incomplete.

    """
    if not isinstance(config, BroadcasterConfig):
        config = BroadcasterConfig.from_mapping(config)

    event_logger = event_logger or BroadcastEventLogger()
    owns_store = token_store is None
    credentials = CredentialCache(
        config,
        token_store or create_token_store(config.cache),
        http_client=token_http_client,
        event_logger=event_logger,
        owns_store=owns_store,
    )
    dependencies = BroadcasterDependencies(
        classifier=ChannelClassifier(config.namespace),
        credentials=credentials,
        delivery=AppSyncDeliveryClient(
            config, credentials, transport=delivery_transport
        ),
        user_resolver=user_resolver or _anonymous,
        authorizer=authorizer or ChannelAuthorizer(),
    )
    return AppSyncBroadcaster(config, dependencies, event_logger=event_logger)
