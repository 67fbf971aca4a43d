"""Runtime services for chatpresence."""

from chatpresence.runtime.session.manager import SessionManager

__all__ = ["SessionManager"]
