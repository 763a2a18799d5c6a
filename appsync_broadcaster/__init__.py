"""Broadcast application events to AWS AppSync Events channels.

This package publishes events to namespaced AppSync channels and issues
the credentials subscribers need to join private and presence channels.

Public API
----------
AppSyncBroadcaster
    Orchestrator exposing ``broadcast`` and ``auth``.
create_broadcaster
    Factory assembling a broadcaster from configuration.
BroadcasterConfig
    Validated configuration, loadable from a mapping or the environment.
ChannelClassifier
    Classification of public, private and presence channels.
ChannelAuthorizer
    Pattern-based authorizer for guarded channels.
CredentialCache
    Two-tier cache of Cognito bearer tokens.
AuthRequest, BroadcastOutcome, ChannelFailure
    Request and result types.
BroadcasterError
    Base exception; see ``appsync_broadcaster.errors`` for the taxonomy.

Examples
--------
>>> from appsync_broadcaster import BroadcasterConfig, create_broadcaster
>>> broadcaster = create_broadcaster(BroadcasterConfig.from_env())
>>> outcome = await broadcaster.broadcast(["orders"], "OrderShipped", {"id": 7})
>>> outcome.successes
1

"""

from __future__ import annotations

from appsync_broadcaster.authorization import (
    ChannelAuthorizer,
    Identity,
    UserIdentity,
)
from appsync_broadcaster.broadcaster import (
    AppSyncBroadcaster,
    AuthRequest,
    BroadcasterDependencies,
    BroadcastOutcome,
    ChannelFailure,
)
from appsync_broadcaster.channels import ChannelClassifier, ChannelKind
from appsync_broadcaster.config import BroadcasterConfig, CacheConfig, CognitoOptions
from appsync_broadcaster.credentials import CredentialCache
from appsync_broadcaster.delivery import AppSyncDeliveryClient, BroadcastEnvelope
from appsync_broadcaster.errors import (
    AccessDeniedError,
    AggregateBroadcastError,
    AuthError,
    BroadcasterError,
    ConfigError,
    GatewayError,
    TransportError,
    UnauthorizedError,
)
from appsync_broadcaster.factory import create_broadcaster
from appsync_broadcaster.observability import BroadcastEventLogger, BroadcastEventType
from appsync_broadcaster.token_store import MemoryTokenStore, RedisTokenStore

__all__ = [
    "AccessDeniedError",
    "AggregateBroadcastError",
    "AppSyncBroadcaster",
    "AppSyncDeliveryClient",
    "AuthError",
    "AuthRequest",
    "BroadcastEnvelope",
    "BroadcastEventLogger",
    "BroadcastEventType",
    "BroadcastOutcome",
    "BroadcasterConfig",
    "BroadcasterDependencies",
    "BroadcasterError",
    "CacheConfig",
    "ChannelAuthorizer",
    "ChannelClassifier",
    "ChannelFailure",
    "ChannelKind",
    "CognitoOptions",
    "ConfigError",
    "CredentialCache",
    "GatewayError",
    "Identity",
    "MemoryTokenStore",
    "RedisTokenStore",
    "TransportError",
    "UnauthorizedError",
    "UserIdentity",
    "create_broadcaster",
]
