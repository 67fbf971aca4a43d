"""Auth backend client built on httpx.

Each AuthBackend owns its own ``httpx.AsyncClient`` and its own credential.
The token is attached per request from instance state rather than through
shared default headers, so two sessions in one process never see each
other's credentials.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from chatpresence.backend.errors import BackendRejectedError, BackendTransportError
from chatpresence.core.config import Config
from chatpresence.core.logging import mask_token

logger = logging.getLogger(__name__)


@dataclass
class BackendResponse:
    """Decoded JSON body of a 2xx auth backend response.

    Attributes:
        success: The body's ``success`` flag.
        message: The body's ``message``, if any.
        data: Full decoded body.
    """

    success: bool
    message: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        """Read a field of the body."""
        return self.data.get(key, default)

    @classmethod
    def from_json(cls, body: Any) -> "BackendResponse":
        """Build from a decoded JSON body.

        Raises:
            BackendTransportError: If the body is not a JSON object.
        """
        if not isinstance(body, dict):
            raise BackendTransportError("Unexpected response from server")
        message = body.get("message")
        return cls(
            success=bool(body.get("success")),
            message=message if isinstance(message, str) else None,
            data=body,
        )


class AuthBackend:
    """Client for the check / login / signup / update-profile endpoints.

    Example:
        >>> backend = AuthBackend(config)
        >>> response = await backend.authenticate("login", {"email": e, "password": p})
        >>> backend.set_token(response.get("token"))
        >>> (await backend.check()).get("user")
    """

    def __init__(
        self,
        config: Config,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the backend client.

        Args:
            config: Root configuration (backend URL and auth settings).
            transport: Optional httpx transport, e.g. ``httpx.MockTransport``.
        """
        self.base_url = config.backend_url + config.auth.api_prefix
        self.token_header = config.auth.token_header
        self._token: str | None = None
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=config.auth.timeout_seconds,
            transport=transport,
        )

    @property
    def token(self) -> str | None:
        """Credential attached to every request, if any."""
        return self._token

    def set_token(self, token: str | None) -> None:
        """Attach (or with None, detach) the credential for future requests."""
        self._token = token
        logger.debug(f"Backend credential set to {mask_token(token)}")

    def clear_token(self) -> None:
        """Detach the credential."""
        self.set_token(None)

    async def check(self) -> BackendResponse:
        """Validate the attached token.

        Returns:
            Response whose ``user`` field holds the profile on success.
        """
        return await self._request("GET", "/check")

    async def authenticate(self, mode: str, credentials: dict[str, Any]) -> BackendResponse:
        """Sign in or register.

        Args:
            mode: Endpoint variant, ``"login"`` or ``"signup"``.
            credentials: Request body (email, password, and for signup the profile fields).

        Returns:
            Response carrying ``userData``, ``token`` and ``message``.
        """
        mode = mode.strip("/")
        if not mode:
            raise ValueError("Authentication mode must not be empty")
        return await self._request("POST", f"/{mode}", json=credentials)

    async def update_profile(self, patch: dict[str, Any]) -> BackendResponse:
        """Update profile fields of the authenticated user.

        Returns:
            Response whose ``user`` field holds the updated profile.
        """
        return await self._request("PUT", "/update-profile", json=patch)

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> BackendResponse:
        """Send a request with the current credential and decode the body.

        Raises:
            BackendRejectedError: On 4xx/5xx responses.
            BackendTransportError: If no usable response was received.
        """
        headers = {self.token_header: self._token} if self._token else {}

        try:
            response = await self._client.request(method, path, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"{method} {path} timed out: {e}")
            raise BackendTransportError("Request timed out") from e
        except httpx.RequestError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise BackendTransportError(str(e) or "Network error") from e

        payload = _decode_json(response)

        if response.is_error:
            message = None
            if isinstance(payload, dict) and isinstance(payload.get("message"), str):
                message = payload["message"]
            logger.info(f"{method} {path} rejected with HTTP {response.status_code}")
            raise BackendRejectedError(
                message or f"Request failed with status code {response.status_code}",
                status_code=response.status_code,
                payload=payload if isinstance(payload, dict) else None,
            )

        if payload is None:
            raise BackendTransportError("Unexpected response from server")

        result = BackendResponse.from_json(payload)
        logger.debug(f"{method} {path} -> success={result.success}")
        return result


def _decode_json(response: httpx.Response) -> Any | None:
    """Decode a JSON body, returning None when the body is not JSON."""
    try:
        return response.json()
    except ValueError:
        return None
