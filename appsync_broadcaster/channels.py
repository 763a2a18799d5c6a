"""Channel name classification for namespaced AppSync channels.

Channel names take the form ``{namespace}/{prefix}{name}`` where the prefix
is ``private-``, ``presence-`` or absent for public channels.

Example:
>>> classifier = ChannelClassifier("app")
>>> classifier.kind("app/presence-chat.1")
<ChannelKind.PRESENCE: 'presence'>
>>> classifier.normalize("app/private-user.7")
'user.7'

"""

from __future__ import annotations

import dataclasses as dc
import enum

PRIVATE_PREFIX = "private-"
PRESENCE_PREFIX = "presence-"


class ChannelKind(enum.StrEnum):
    """Access class of a channel."""

    PUBLIC = "public"
    PRIVATE = "private"
    PRESENCE = "presence"


@dc.dataclass(frozen=True, slots=True)
class ChannelClassifier:
    """Classify and normalize channel names within one namespace."""

    namespace: str

    @property
    def private_prefix(self) -> str:
        """Return the fully-qualified prefix of private channels."""
        return f"{self.namespace}/{PRIVATE_PREFIX}"

    @property
    def presence_prefix(self) -> str:
        """Return the fully-qualified prefix of presence channels."""
        return f"{self.namespace}/{PRESENCE_PREFIX}"

    def qualify(self, channel: str) -> str:
        """Return ``channel`` prefixed with the namespace."""
        return f"{self.namespace}/{channel}"

    def is_private(self, channel: str) -> bool:
        """Return whether ``channel`` is a private channel."""
        return channel.startswith(self.private_prefix)

    def is_presence(self, channel: str) -> bool:
        """Return whether ``channel`` is a presence channel."""
        return channel.startswith(self.presence_prefix)

    def is_guarded(self, channel: str) -> bool:
        """Return whether ``channel`` requires authorization."""
        return self.is_private(channel) or self.is_presence(channel)

    def kind(self, channel: str) -> ChannelKind:
        """Return the access class of ``channel``."""
        if self.is_private(channel):
            return ChannelKind.PRIVATE
        if self.is_presence(channel):
            return ChannelKind.PRESENCE
        return ChannelKind.PUBLIC

    def normalize(self, channel: str) -> str:
        """Strip the namespace and access prefix from a guarded channel.

        Public channels are returned unchanged.
        """
        if self.is_private(channel):
            return channel.removeprefix(self.private_prefix)
        if self.is_presence(channel):
            return channel.removeprefix(self.presence_prefix)
        return channel


__all__ = ["PRESENCE_PREFIX", "PRIVATE_PREFIX", "ChannelClassifier", "ChannelKind"]
