"""Exceptions raised by the broadcaster and its collaborators."""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from appsync_broadcaster.broadcaster import ChannelFailure

# Response bodies are truncated in messages; the full body stays on the error.
_BODY_PREVIEW_LIMIT = 200


def _preview(body: str) -> str:
    if len(body) > _BODY_PREVIEW_LIMIT:
        return body[:_BODY_PREVIEW_LIMIT] + "..."
    return body


class BroadcasterError(RuntimeError):
    """Base exception for every error raised by this package."""


class ConfigError(BroadcasterError):
    """Raised when the broadcaster configuration is missing or invalid."""

    @classmethod
    def missing_key(cls, key: str) -> ConfigError:
        """Return an error for an absent or empty top-level key."""
        return cls(f"Missing required config key: {key}")

    @classmethod
    def missing_option(cls, option: str) -> ConfigError:
        """Return an error for an absent or empty ``options`` entry."""
        return cls(f"Missing required config option: {option}")

    @classmethod
    def unknown_cache_driver(
        cls, driver: str, valid_drivers: cabc.Iterable[str]
    ) -> ConfigError:
        """Return an error for a cache driver that is not supported."""
        valid = ", ".join(f"'{name}'" for name in sorted(valid_drivers))
        return cls(f"Unknown cache driver '{driver}'. Valid options are: {valid}")

    @classmethod
    def invalid_section(cls, section: str) -> ConfigError:
        """Return an error when a nested section is not a mapping."""
        return cls(f"Config section '{section}' must be a mapping")


class AuthError(BroadcasterError):
    """Raised when a bearer token cannot be obtained from Cognito.

    Attributes
    ----------
    status_code
        HTTP status of the token endpoint response, when one was received.
    body
        Raw response body, kept for diagnostics.

    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        """Initialise with a message and optional response details."""
        self.status_code = status_code
        self.body = body
        super().__init__(message)

    @classmethod
    def token_request_failed(cls, status_code: int, body: str) -> AuthError:
        """Return an error for a non-success token endpoint response."""
        return cls(
            f"Failed to authenticate with Cognito (HTTP {status_code}): "
            f"{_preview(body)}",
            status_code=status_code,
            body=body,
        )

    @classmethod
    def missing_access_token(cls, body: str) -> AuthError:
        """Return an error for a response without ``access_token``."""
        return cls("No access token received from Cognito", body=body)

    @classmethod
    def invalid_response(cls, body: str) -> AuthError:
        """Return an error for a token response that is not valid JSON."""
        return cls(
            f"Cognito token response could not be decoded: {_preview(body)}",
            body=body,
        )

    @classmethod
    def network_error(cls, detail: str) -> AuthError:
        """Return an error when the token endpoint could not be reached."""
        return cls(f"Cognito token endpoint unreachable: {detail}")


class UnauthorizedError(BroadcasterError):
    """Raised when the gateway rejects the bearer token with HTTP 401."""

    @classmethod
    def invalid_token(cls) -> UnauthorizedError:
        """Return the error for an expired or revoked token."""
        return cls("Unauthorized: Invalid or expired token")


class TransportError(BroadcasterError):
    """Raised when no response was received from the gateway."""

    @classmethod
    def network_error(cls, detail: str) -> TransportError:
        """Return an error for connection, TLS or timeout failures."""
        return cls(f"AppSync request failed: {detail}")

    @classmethod
    def retries_exhausted(
        cls, channel: str, attempts: int, last_error: BaseException | None
    ) -> TransportError:
        """Return the terminal error after every delivery attempt failed."""
        detail = str(last_error) if last_error is not None else "Unknown error"
        return cls(
            f"Failed to broadcast to {channel} after {attempts} attempts: {detail}"
        )


class GatewayError(BroadcasterError):
    """Raised when the gateway answers with a non-2xx, non-401 status.

    Attributes
    ----------
    status_code
        HTTP status returned by the gateway.
    body
        Raw response body.

    """

    def __init__(self, message: str, *, status_code: int, body: str) -> None:
        """Initialise with the response status and body."""
        self.status_code = status_code
        self.body = body
        super().__init__(message)

    @classmethod
    def http_error(cls, status_code: int, body: str) -> GatewayError:
        """Return an error describing the rejected broadcast."""
        return cls(
            f"AppSync broadcast failed with status {status_code}: {_preview(body)}",
            status_code=status_code,
            body=body,
        )


class AccessDeniedError(BroadcasterError):
    """Raised when a subscriber may not join a guarded channel."""

    def __init__(self, message: str, *, channel: str) -> None:
        """Initialise with the channel that was refused."""
        self.channel = channel
        super().__init__(message)

    @classmethod
    def no_identity(cls, channel: str) -> AccessDeniedError:
        """Return an error for a guarded channel requested anonymously."""
        return cls(
            f"Access Denied for channel {channel}: No authenticated user",
            channel=channel,
        )

    @classmethod
    def forbidden(cls, channel: str) -> AccessDeniedError:
        """Return an error for an identity the authorizer rejected."""
        return cls(f"Access Denied for channel {channel}", channel=channel)


class AggregateBroadcastError(BroadcasterError):
    """Raised when a multi-channel broadcast did not deliver everywhere.

    Attributes
    ----------
    failures
        One entry per failed channel, in broadcast order.
    successes
        Number of channels that received the event.

    """

    def __init__(
        self,
        message: str,
        *,
        failures: tuple[ChannelFailure, ...],
        successes: int,
    ) -> None:
        """Initialise with the per-channel failures."""
        self.failures = failures
        self.successes = successes
        super().__init__(message)

    @staticmethod
    def _describe(failures: tuple[ChannelFailure, ...]) -> str:
        return "; ".join(f"{failure.channel}: {failure.error}" for failure in failures)

    @classmethod
    def all_failed(
        cls, failures: tuple[ChannelFailure, ...]
    ) -> AggregateBroadcastError:
        """Return the error raised when no channel received the event."""
        return cls(
            f"All broadcasts failed: {cls._describe(failures)}",
            failures=failures,
            successes=0,
        )

    @classmethod
    def partial(
        cls, failures: tuple[ChannelFailure, ...], successes: int
    ) -> AggregateBroadcastError:
        """Return the error raised for partial failure in strict mode."""
        return cls(
            f"Broadcast failed for {len(failures)} channel(s) "
            f"({successes} succeeded): {cls._describe(failures)}",
            failures=failures,
            successes=successes,
        )


__all__ = [
    "AccessDeniedError",
    "AggregateBroadcastError",
    "AuthError",
    "BroadcasterError",
    "ConfigError",
    "GatewayError",
    "TransportError",
    "UnauthorizedError",
]
