"""Structured observability events for broadcasting and authentication.

``BroadcastEventLogger`` is injected into the broadcaster and the
credential cache; every event is a single femtologging record of the form
``[event.type] key=value ...`` so log aggregators can parse it.

Usage
-----
>>> event_logger = BroadcastEventLogger()
>>> event_logger.log_partial_failure(
...     failures=(ChannelFailure("default/orders", "boom"),),
...     successes=2,
... )

"""

from __future__ import annotations

import enum
import typing as typ

from appsync_broadcaster.logging import get_logger, log_error, log_info, log_warning

if typ.TYPE_CHECKING:
    from appsync_broadcaster.broadcaster import ChannelFailure

logger = get_logger(__name__)


class BroadcastEventType(enum.StrEnum):
    """Structured log event types."""

    CHANNEL_RETRYING = "broadcast.channel.retrying"
    CHANNEL_FAILED = "broadcast.channel.failed"
    CREDENTIALS_REFRESHED = "broadcast.credentials.refreshed"
    PARTIAL_FAILURE = "broadcast.partial_failure"
    ALL_FAILED = "broadcast.all_failed"
    ACCESS_DENIED = "auth.access_denied"
    AUTH_FAILED = "auth.failed"
    TOKEN_FETCHED = "token.fetched"
    TOKEN_FETCH_FAILED = "token.fetch_failed"


def _channels(failures: tuple[ChannelFailure, ...]) -> str:
    return ",".join(failure.channel for failure in failures)


class BroadcastEventLogger:
    """Emit broadcaster events via femtologging.

    Successful deliveries are not logged; retries, refreshes and denials
    are WARNING or INFO, terminal failures are ERROR.
    """

    def log_channel_retrying(
        self, *, channel: str, attempt: int, delay_s: float, error: BaseException
    ) -> None:
        """Log a transport failure that will be retried after ``delay_s``."""
        log_warning(
            logger,
            "[%s] channel=%s attempt=%d delay_ms=%d error_message=%s",
            BroadcastEventType.CHANNEL_RETRYING,
            channel,
            attempt,
            round(delay_s * 1000),
            str(error),
        )

    def log_channel_failed(
        self, *, channel: str, error: BaseException, after_refresh: bool = False
    ) -> None:
        """Log a channel that will be recorded as failed."""
        log_error(
            logger,
            "[%s] channel=%s after_refresh=%s error_type=%s error_message=%s",
            BroadcastEventType.CHANNEL_FAILED,
            channel,
            after_refresh,
            type(error).__name__,
            str(error),
            exc_info=error,
        )

    def log_credentials_refreshed(self, *, channel: str) -> None:
        """Log that a 401 forced the token to be invalidated."""
        log_info(
            logger,
            "[%s] channel=%s",
            BroadcastEventType.CREDENTIALS_REFRESHED,
            channel,
        )

    def log_partial_failure(
        self, *, failures: tuple[ChannelFailure, ...], successes: int
    ) -> None:
        """Log a broadcast where only some channels received the event."""
        log_warning(
            logger,
            "[%s] failed_channels=%s failures=%d successes=%d",
            BroadcastEventType.PARTIAL_FAILURE,
            _channels(failures),
            len(failures),
            successes,
        )

    def log_all_failed(self, *, failures: tuple[ChannelFailure, ...]) -> None:
        """Log a broadcast where no channel received the event."""
        log_error(
            logger,
            "[%s] failed_channels=%s failures=%d",
            BroadcastEventType.ALL_FAILED,
            _channels(failures),
            len(failures),
        )

    def log_access_denied(self, *, channel: str, reason: str) -> None:
        """Log a refused subscription to a guarded channel."""
        log_warning(
            logger,
            "[%s] channel=%s reason=%s",
            BroadcastEventType.ACCESS_DENIED,
            channel,
            reason,
        )

    def log_auth_failed(self, *, channel: str, error: BaseException) -> None:
        """Log an unexpected failure while authenticating a subscriber."""
        log_error(
            logger,
            "[%s] channel=%s error_type=%s error_message=%s",
            BroadcastEventType.AUTH_FAILED,
            channel,
            type(error).__name__,
            str(error),
            exc_info=error,
        )

    def log_token_fetched(self, *, expires_in: int, ttl_seconds: int) -> None:
        """Log a token issued by Cognito."""
        log_info(
            logger,
            "[%s] expires_in=%d cache_ttl_seconds=%d",
            BroadcastEventType.TOKEN_FETCHED,
            expires_in,
            ttl_seconds,
        )

    def log_token_fetch_failed(
        self, *, error: BaseException, status_code: int | None = None
    ) -> None:
        """Log a failure to obtain a token."""
        log_error(
            logger,
            "[%s] status_code=%s error_type=%s error_message=%s",
            BroadcastEventType.TOKEN_FETCH_FAILED,
            status_code,
            type(error).__name__,
            str(error),
        )


__all__ = ["BroadcastEventLogger", "BroadcastEventType"]
