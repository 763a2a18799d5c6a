"""Shared fixtures for unit and feature tests."""

from __future__ import annotations

import copy
import typing as typ
from unittest import mock

import pytest

from appsync_broadcaster.authorization import ChannelAuthorizer
from appsync_broadcaster.broadcaster import AppSyncBroadcaster, BroadcasterDependencies
from appsync_broadcaster.channels import ChannelClassifier
from appsync_broadcaster.config import BroadcasterConfig
from appsync_broadcaster.credentials import CredentialCache
from appsync_broadcaster.observability import BroadcastEventLogger
from tests.helpers.fakes import (
    TEST_TOKEN,
    FakeClock,
    ScriptedDelivery,
    SleepRecorder,
)

_VALID_MAPPING: dict[str, typ.Any] = {
    "namespace": "test",
    "app_id": "test-app-id",
    "region": "us-east-1",
    "cache": {"driver": "memory", "prefix": "appsync_broadcast_"},
    "options": {
        "cognito_pool": "test-pool",
        "cognito_region": "us-east-1",
        "cognito_client_id": "test-client-id",
        "cognito_client_secret": "test-client-secret",
    },
}


@pytest.fixture
def config_mapping() -> dict[str, typ.Any]:
    """Return a fresh, valid nested configuration mapping."""
    return copy.deepcopy(_VALID_MAPPING)


@pytest.fixture
def config(config_mapping: dict[str, typ.Any]) -> BroadcasterConfig:
    """Return a validated configuration for the ``test`` namespace."""
    return BroadcasterConfig.from_mapping(config_mapping)


@pytest.fixture
def fake_clock() -> FakeClock:
    """Return a controllable clock."""
    return FakeClock()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    """Return a sleep replacement recording backoff delays."""
    return SleepRecorder()


@pytest.fixture
def event_logger() -> mock.MagicMock:
    """Return a mock structured event logger."""
    return mock.MagicMock(spec=BroadcastEventLogger)


@pytest.fixture
def credentials() -> mock.AsyncMock:
    """Return a credential cache double issuing ``TEST_TOKEN``."""
    cache = mock.AsyncMock(spec=CredentialCache)
    cache.get_token.return_value = TEST_TOKEN
    return cache


@pytest.fixture
def delivery() -> ScriptedDelivery:
    """Return a delivery client that succeeds unless scripted otherwise."""
    return ScriptedDelivery()


@pytest.fixture
def user_resolver() -> mock.Mock:
    """Return a resolver double; anonymous unless configured."""
    return mock.Mock(return_value=None)


@pytest.fixture
def authorizer() -> ChannelAuthorizer:
    """Return an authorizer with no rules."""
    return ChannelAuthorizer()


class BroadcasterFactory(typ.Protocol):
    """Callable fixture building broadcasters around the shared doubles."""

    def __call__(
        self,
        *,
        config: BroadcasterConfig | None = None,
        delivery: ScriptedDelivery | None = None,
    ) -> AppSyncBroadcaster: ...


@pytest.fixture
def make_broadcaster(  # noqa: PLR0913
    config: BroadcasterConfig,
    credentials: mock.AsyncMock,
    delivery: ScriptedDelivery,
    user_resolver: mock.Mock,
    authorizer: ChannelAuthorizer,
    event_logger: mock.MagicMock,
    sleep_recorder: SleepRecorder,
    fake_clock: FakeClock,
) -> BroadcasterFactory:
    """Return a factory for broadcasters wired to test doubles."""

    def _make(
        *,
        config: BroadcasterConfig = config,
        delivery: ScriptedDelivery = delivery,
    ) -> AppSyncBroadcaster:
        dependencies = BroadcasterDependencies(
            classifier=ChannelClassifier(config.namespace),
            credentials=credentials,
            delivery=delivery,
            user_resolver=user_resolver,
            authorizer=authorizer,
        )
        return AppSyncBroadcaster(
            config,
            dependencies,
            event_logger=event_logger,
            sleep=sleep_recorder,
            clock=fake_clock.now,
        )

    return _make
