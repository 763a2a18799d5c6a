"""Subscriber identities and channel authorization.

A host decides who may join a guarded channel. It can implement the
``Authorizer`` protocol directly or register per-channel callbacks on a
``ChannelAuthorizer``:

>>> authorizer = ChannelAuthorizer()
>>> authorizer.channel(
...     "orders.{order_id}",
...     lambda user, order_id: order_id in user.order_ids,
... )
>>> authorizer.channel("chat.{room}", lambda user, room: {"role": "member"})

Callbacks receive the identity and the values captured by the pattern
placeholders. They return ``True`` to approve, ``False`` or ``None`` to
deny, or a mapping to approve with channel data for presence channels.
Callbacks may be coroutines.
"""

from __future__ import annotations

import collections.abc as cabc
import dataclasses as dc
import re
import typing as typ

from appsync_broadcaster.common.awaitables import resolve_maybe_awaitable

if typ.TYPE_CHECKING:
    from appsync_broadcaster.broadcaster import AuthRequest

AccessDecision: typ.TypeAlias = bool | cabc.Mapping[str, object] | None
ChannelCallback: typ.TypeAlias = cabc.Callable[
    ..., AccessDecision | cabc.Awaitable[AccessDecision]
]

_PLACEHOLDER = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


@typ.runtime_checkable
class Identity(typ.Protocol):
    """A resolved subscriber."""

    @property
    def id(self) -> object:
        """Stable user identifier."""
        ...

    @property
    def name(self) -> str:
        """Display name shared with presence channel members."""
        ...


@dc.dataclass(frozen=True, slots=True)
class UserIdentity:
    """Plain identity for hosts without their own user type."""

    id: object
    name: str


class UserResolver(typ.Protocol):
    """Resolves the caller behind an authentication request."""

    def __call__(
        self, request: AuthRequest, channel: str
    ) -> Identity | None | cabc.Awaitable[Identity | None]:
        """Return the caller's identity, or ``None`` when anonymous."""
        ...


class Authorizer(typ.Protocol):
    """Decides whether an identity may join a normalized channel."""

    async def authorize(self, identity: Identity, channel: str) -> AccessDecision:
        """Return the access decision for ``identity`` on ``channel``."""
        ...


def compile_channel_pattern(pattern: str) -> re.Pattern[str]:
    """Compile ``pattern`` into a regex matching whole channel names.

    ``{name}`` placeholders match one or more characters other than ``/``;
    everything else is matched literally.
    """
    parts: list[str] = []
    position = 0
    for match in _PLACEHOLDER.finditer(pattern):
        parts.append(re.escape(pattern[position : match.start()]))
        parts.append(f"(?P<{match.group(1)}>[^/]+)")
        position = match.end()
    parts.append(re.escape(pattern[position:]))
    return re.compile("".join(parts))


@dc.dataclass(frozen=True, slots=True)
class _ChannelRule:
    pattern: str
    regex: re.Pattern[str]
    callback: ChannelCallback


class ChannelAuthorizer:
    """Authorizer backed by channel-name patterns.

    Rules are tried in registration order; the first pattern that matches
    the whole channel name decides. Channels matching no rule are denied.
    """

    def __init__(self) -> None:
        """Create an authorizer with no rules."""
        self._rules: list[_ChannelRule] = []

    def channel(self, pattern: str, callback: ChannelCallback) -> ChannelAuthorizer:
        """Register ``callback`` for channels matching ``pattern``."""
        self._rules.append(
            _ChannelRule(
                pattern=pattern,
                regex=compile_channel_pattern(pattern),
                callback=callback,
            )
        )
        return self

    @property
    def patterns(self) -> tuple[str, ...]:
        """Return the registered patterns in order."""
        return tuple(rule.pattern for rule in self._rules)

    async def authorize(self, identity: Identity, channel: str) -> AccessDecision:
        """Run the first matching callback and return its decision."""
        for rule in self._rules:
            match = rule.regex.fullmatch(channel)
            if match is None:
                continue
            return await resolve_maybe_awaitable(
                rule.callback(identity, **match.groupdict())
            )
        return False


__all__ = [
    "AccessDecision",
    "Authorizer",
    "ChannelAuthorizer",
    "ChannelCallback",
    "Identity",
    "UserIdentity",
    "UserResolver",
    "compile_channel_pattern",
]
