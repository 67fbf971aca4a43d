"""Session subsystem for chatpresence.

Provides the session manager that keeps token, user and presence in sync.
"""

from chatpresence.runtime.session.manager import SessionManager

__all__ = ["SessionManager"]
