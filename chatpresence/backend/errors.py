"""Error types raised by the auth backend client."""

from typing import Any

GENERIC_ERROR_MESSAGE = "Something went wrong"


class BackendError(Exception):
    """Base class for auth backend failures."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BackendRejectedError(BackendError):
    """The backend answered with an HTTP error status.

    Attributes:
        status_code: HTTP status of the response.
        payload: Decoded JSON body, or None if the body was not JSON.
    """

    def __init__(self, message: str, status_code: int, payload: dict[str, Any] | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload

    @property
    def backend_message(self) -> str | None:
        """The ``message`` field of the error body, if present."""
        if isinstance(self.payload, dict):
            message = self.payload.get("message")
            if isinstance(message, str) and message:
                return message
        return None


class BackendTransportError(BackendError):
    """The request did not produce a response (network error, timeout, bad body)."""


def message_for(error: Exception) -> str:
    """Derive the user-facing text for a failed request.

    Prefers the backend's own ``message``, then the exception text, then a
    generic fallback.

    Args:
        error: Exception raised while talking to the backend.

    Returns:
        Text suitable for a notification.
    """
    if isinstance(error, BackendRejectedError) and error.backend_message:
        return error.backend_message
    text = str(error).strip()
    return text or GENERIC_ERROR_MESSAGE
