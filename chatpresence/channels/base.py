"""Base presence channel interface."""

import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from chatpresence.model.session import PresenceState

logger = logging.getLogger(__name__)

EventHandler = Callable[..., Any]


class PresenceChannel(ABC):
    """Abstract base class for presence channels.

    A presence channel is a realtime connection scoped to one user identity
    that reports the roster of currently connected users. Implementations
    handle:
    - Transport connection and teardown
    - Forwarding named server events to registered handlers
    - Tracking connection state
    """

    name: str = "base"

    # Emitted by the channel when the transport cannot connect
    ERROR_EVENT = "connect_error"

    def __init__(self, identity: str, roster_event: str = "getOnlineUsers"):
        """Initialize the channel.

        Args:
            identity: User id the connection is opened for.
            roster_event: Name of the event carrying the online user roster.
        """
        self.identity = identity
        self.roster_event = roster_event
        self.state = PresenceState.DISCONNECTED
        self._handlers: dict[str, list[EventHandler]] = {}
        self._closed = False

    @property
    def is_connected(self) -> bool:
        """Check if the transport is currently connected."""
        return self.state is PresenceState.CONNECTED

    @property
    def is_closed(self) -> bool:
        """Check if close() has been called. A closed channel is never reopened."""
        return self._closed

    def on(self, event: str, handler: EventHandler) -> None:
        """Register a handler for a named event.

        Args:
            event: Event name (e.g. ``connect_error`` or the roster event).
            handler: Sync or async callable receiving the event arguments.
        """
        self._handlers.setdefault(event, []).append(handler)

    async def emit_local(self, event: str, *args: Any) -> None:
        """Deliver an event to the registered handlers.

        Handler exceptions are logged and do not stop delivery to the
        remaining handlers.
        """
        for handler in list(self._handlers.get(event, [])):
            try:
                result = handler(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Handler for '{event}' on {self.name} channel failed: {e}", exc_info=True)

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection. Failures are reported via ERROR_EVENT, not raised."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the connection and stop any transport-level reconnection."""
        ...
