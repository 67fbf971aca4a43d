"""HTTP client for the chat backend's auth endpoints."""

from chatpresence.backend.client import AuthBackend, BackendResponse
from chatpresence.backend.errors import (
    BackendError,
    BackendRejectedError,
    BackendTransportError,
    message_for,
)

__all__ = [
    "AuthBackend",
    "BackendResponse",
    "BackendError",
    "BackendRejectedError",
    "BackendTransportError",
    "message_for",
]
