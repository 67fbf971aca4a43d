"""Domain models for session and presence state."""

from dataclasses import dataclass, field
from enum import Enum

from chatpresence.model.user import AuthenticatedUser


class AuthState(Enum):
    """Authentication state of a session."""

    UNAUTHENTICATED = "unauthenticated"
    VALIDATING = "validating"
    AUTHENTICATED = "authenticated"


class PresenceState(Enum):
    """Connection state of the presence channel."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable view of a session at one point in time.

    Attributes:
        token: Current session token, if any.
        user: Authenticated user profile, if any.
        online_users: User ids currently reported online.
        auth_state: Authentication state.
        presence_state: Presence channel state.
    """

    token: str | None = None
    user: AuthenticatedUser | None = None
    online_users: tuple[str, ...] = field(default_factory=tuple)
    auth_state: AuthState = AuthState.UNAUTHENTICATED
    presence_state: PresenceState = PresenceState.DISCONNECTED

    @property
    def is_authenticated(self) -> bool:
        """Check if the snapshot holds a confirmed user."""
        return self.user is not None
