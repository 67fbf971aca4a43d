"""Realtime presence channels."""

from chatpresence.channels.base import PresenceChannel
from chatpresence.channels.factory import create_channel
from chatpresence.channels.socketio import SocketIOPresenceChannel

__all__ = [
    "PresenceChannel",
    "SocketIOPresenceChannel",
    "create_channel",
]
