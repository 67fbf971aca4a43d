"""Channel factory for creating presence channels from configuration."""

import logging

from chatpresence.channels.base import PresenceChannel
from chatpresence.core.config import Config

logger = logging.getLogger(__name__)


def create_channel(config: Config, identity: str) -> PresenceChannel:
    """Create a presence channel for a user from config.

    Args:
        config: Root configuration (presence settings and backend URL).
        identity: User id to open the channel for.

    Returns:
        Unconnected PresenceChannel instance.
    """
    from chatpresence.channels.socketio import SocketIOPresenceChannel

    presence = config.presence
    logger.debug(f"Creating presence channel for user {identity} at {config.presence_url}")
    return SocketIOPresenceChannel(
        url=config.presence_url,
        identity=identity,
        socketio_path=presence.socketio_path,
        transports=presence.transports,
        identity_param=presence.identity_param,
        roster_event=presence.roster_event,
        reconnection=presence.reconnection,
        wait_timeout=presence.wait_timeout,
    )
