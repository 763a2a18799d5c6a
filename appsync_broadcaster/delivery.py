"""HTTP delivery of broadcast envelopes to the AppSync Events API."""

from __future__ import annotations

import typing as typ
from http import HTTPStatus

import httpx
import msgspec

from appsync_broadcaster.errors import GatewayError, TransportError, UnauthorizedError

if typ.TYPE_CHECKING:
    from appsync_broadcaster.config import BroadcasterConfig
    from appsync_broadcaster.credentials import CredentialCache

EVENT_TIMEOUT_S = 30.0
EVENT_PATH = "event"
USER_AGENT = "appsync-broadcaster/0.1"


class BroadcastEnvelope(msgspec.Struct, kw_only=True, frozen=True):
    """Event published to one channel.

    Attributes
    ----------
    event
        Application event name.
    data
        Event payload.
    channel
        Fully-qualified channel name.
    timestamp
        ISO-8601 UTC time the envelope was built.

    """

    event: str
    data: dict[str, typ.Any]
    channel: str
    timestamp: str

    def to_json(self) -> str:
        """Return the envelope encoded as a JSON string."""
        return msgspec.json.encode(self).decode("utf-8")


@typ.runtime_checkable
class DeliveryClient(typ.Protocol):
    """Sends one envelope to one channel."""

    async def send(self, channel: str, envelope: BroadcastEnvelope) -> None:
        """Publish ``envelope`` to ``channel``.

        Raises
        ------
        UnauthorizedError
            If the gateway rejected the bearer token.
        GatewayError
            If the gateway answered with any other non-2xx status.
        TransportError
            If no response was received.

        """
        ...

    async def reset(self) -> None:
        """Discard connection state so the next send starts afresh."""
        ...

    async def aclose(self) -> None:
        """Release connection resources."""
        ...


class AppSyncDeliveryClient:
    """Publish envelopes with httpx.

    The underlying ``httpx.AsyncClient`` is created on first use and kept
    until :meth:`reset` or :meth:`aclose`. A reset client stays open so
    requests already sent on it can finish; :meth:`aclose` closes it.

    Parameters
    ----------
    config
        Broadcaster configuration supplying the API base URL.
    credentials
        Source of the bearer token attached to each request.
    transport
        Optional httpx transport, used by tests to stub the gateway.

    """

    def __init__(
        self,
        config: BroadcasterConfig,
        credentials: CredentialCache,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Store collaborators; no connection is opened yet."""
        self._config = config
        self._credentials = credentials
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._retired: list[httpx.AsyncClient] = []

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._config.event_api_base_url,
                timeout=EVENT_TIMEOUT_S,
                headers={
                    "Content-Type": "application/json",
                    "User-Agent": USER_AGENT,
                },
                transport=self._transport,
            )
        return self._client

    async def send(self, channel: str, envelope: BroadcastEnvelope) -> None:
        """Publish ``envelope`` to ``channel`` with the current token."""
        token = await self._credentials.get_token()
        response = await self._post(
            {"channel": channel, "events": [envelope.to_json()]},
            token,
        )
        self._check_response(response)

    async def _post(self, payload: dict[str, object], token: str) -> httpx.Response:
        try:
            return await self._get_client().post(
                EVENT_PATH,
                json=payload,
                headers={"Authorization": token},
            )
        except httpx.RequestError as exc:
            raise TransportError.network_error(str(exc) or type(exc).__name__) from exc

    @staticmethod
    def _check_response(response: httpx.Response) -> None:
        if response.is_success:
            return
        if response.status_code == HTTPStatus.UNAUTHORIZED:
            raise UnauthorizedError.invalid_token()
        raise GatewayError.http_error(response.status_code, response.text)

    async def reset(self) -> None:
        """Start the next send on a new client."""
        client, self._client = self._client, None
        if client is not None:
            self._retired.append(client)

    async def aclose(self) -> None:
        """Close the current client and every client retired by a reset."""
        await self.reset()
        retired, self._retired = self._retired, []
        for client in retired:
            await client.aclose()


__all__ = [
    "EVENT_TIMEOUT_S",
    "AppSyncDeliveryClient",
    "BroadcastEnvelope",
    "DeliveryClient",
]
