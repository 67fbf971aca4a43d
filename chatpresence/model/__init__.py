"""chatpresence domain models - pure business entities.

This package contains stable dataclasses and enums representing the
authenticated user, session state, and notifications. These models have no
dependencies on infrastructure or application logic.
"""

from chatpresence.model.notification import Notification, NotificationKind
from chatpresence.model.session import AuthState, PresenceState, SessionSnapshot
from chatpresence.model.user import AuthenticatedUser

__all__ = [
    # User
    "AuthenticatedUser",
    # Session
    "AuthState",
    "PresenceState",
    "SessionSnapshot",
    # Notification
    "Notification",
    "NotificationKind",
]
