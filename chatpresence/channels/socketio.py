"""Socket.IO presence channel using python-socketio's asyncio client."""

import logging
from typing import Any
from urllib.parse import urlencode

import socketio
from socketio.exceptions import ConnectionError as SocketIOConnectionError

from chatpresence.channels.base import PresenceChannel
from chatpresence.model.session import PresenceState

logger = logging.getLogger(__name__)


class SocketIOPresenceChannel(PresenceChannel):
    """Presence channel over Socket.IO.

    The user identity travels as a query parameter of the connection URL
    (``?userId=<id>`` by default), which is how the chat server keys its
    socket map. The server answers with the roster event whenever a user
    connects or disconnects.
    """

    name = "socketio"

    def __init__(
        self,
        url: str,
        identity: str,
        *,
        socketio_path: str = "socket.io",
        transports: list[str] | None = None,
        identity_param: str = "userId",
        roster_event: str = "getOnlineUsers",
        reconnection: bool = True,
        wait_timeout: float = 5.0,
        client: socketio.AsyncClient | None = None,
    ):
        """Initialize the channel.

        Args:
            url: Socket.IO server URL.
            identity: User id the connection is opened for.
            socketio_path: Socket.IO endpoint path on the server.
            transports: Allowed transports, or None for the library default.
            identity_param: Query parameter name carrying the identity.
            roster_event: Event carrying the online user roster.
            reconnection: Let the client reconnect after a dropped connection.
            wait_timeout: Seconds to wait for the initial connection.
            client: Pre-built client (mainly for tests).
        """
        super().__init__(identity, roster_event=roster_event)
        self.url = url
        self.socketio_path = socketio_path
        self.transports = transports
        self.identity_param = identity_param
        self.wait_timeout = wait_timeout
        self._client = client or socketio.AsyncClient(reconnection=reconnection, logger=False)
        self._bound_events: set[str] = set()

        self._client.on("connect", self._on_connect)
        self._client.on("disconnect", self._on_disconnect)
        self._bind(self.ERROR_EVENT)

    @property
    def connect_url(self) -> str:
        """Server URL with the identity query parameter."""
        separator = "&" if "?" in self.url else "?"
        return f"{self.url}{separator}{urlencode({self.identity_param: self.identity})}"

    @property
    def sid(self) -> str | None:
        """Session id assigned by the server, once connected."""
        return getattr(self._client, "sid", None)

    def on(self, event: str, handler: Any) -> None:
        super().on(event, handler)
        self._bind(event)

    def _bind(self, event: str) -> None:
        """Forward a server event to the local handlers, once per event name."""
        if event in self._bound_events:
            return
        self._bound_events.add(event)

        async def forward(*args: Any) -> None:
            await self.emit_local(event, *args)

        self._client.on(event, forward)

    async def _on_connect(self) -> None:
        self.state = PresenceState.CONNECTED
        logger.info(f"Presence channel connected for user {self.identity}")

    async def _on_disconnect(self, *args: Any) -> None:
        if self.state is not PresenceState.DISCONNECTED:
            logger.info(f"Presence channel disconnected for user {self.identity}")
        self.state = PresenceState.DISCONNECTED

    async def connect(self) -> None:
        """Connect to the server.

        A failed initial connection is logged and reported through the
        ``connect_error`` handlers; the channel then stays disconnected.
        """
        if self._closed:
            raise RuntimeError("Cannot reconnect a closed presence channel")

        self.state = PresenceState.CONNECTING
        kwargs: dict[str, Any] = {
            "socketio_path": self.socketio_path,
            "wait_timeout": self.wait_timeout,
        }
        if self.transports:
            kwargs["transports"] = self.transports

        try:
            await self._client.connect(self.connect_url, **kwargs)
        except SocketIOConnectionError as e:
            self.state = PresenceState.DISCONNECTED
            logger.warning(f"Presence connection to {self.url} failed: {e}")
            await self.emit_local(self.ERROR_EVENT, str(e))
            return

        if self._closed:
            # close() ran while the handshake was in flight
            await self._client.shutdown()
            self.state = PresenceState.DISCONNECTED
            return

        self.state = PresenceState.CONNECTED

    async def close(self) -> None:
        """Disconnect from the server and stop any reconnect loop. Safe to call more than once.

        ``shutdown()`` disconnects a live client and also aborts a reconnect
        loop started after a dropped connection, which ``disconnect()`` alone
        leaves running.
        """
        if self._closed and self.state is PresenceState.DISCONNECTED:
            return
        self._closed = True
        try:
            await self._client.shutdown()
        except Exception as e:
            logger.warning(f"Error while closing presence channel for user {self.identity}: {e}")
        self.state = PresenceState.DISCONNECTED
        logger.debug(f"Presence channel closed for user {self.identity}")
