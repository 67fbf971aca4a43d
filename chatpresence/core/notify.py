"""User-facing notification callbacks.

The session manager reports outcomes through a ``notify(kind, text)`` callable
so the concrete presentation (toast, console line, status bar) stays with the
owning application.
"""

import logging
from collections.abc import Callable

from chatpresence.model.notification import Notification, NotificationKind

logger = logging.getLogger(__name__)

NotifyCallback = Callable[[NotificationKind, str], None]


def log_notification(kind: NotificationKind, text: str) -> None:
    """Default notifier: write the notification to the log."""
    if kind is NotificationKind.ERROR:
        logger.warning(f"[notify] {text}")
    else:
        logger.info(f"[notify] {text}")


class NotificationRecorder:
    """Notifier that keeps every notification in memory.

    Useful for applications that poll for new notifications and for tests.

    Example:
        >>> recorder = NotificationRecorder()
        >>> recorder(NotificationKind.SUCCESS, "Logged out successfully")
        >>> recorder.texts
        ['Logged out successfully']
    """

    def __init__(self, forward: NotifyCallback | None = None):
        """Initialize the recorder.

        Args:
            forward: Optional notifier to also pass each notification to.
        """
        self.notifications: list[Notification] = []
        self._forward = forward

    def __call__(self, kind: NotificationKind, text: str) -> None:
        self.notifications.append(Notification(kind=kind, text=text))
        if self._forward:
            self._forward(kind, text)

    @property
    def texts(self) -> list[str]:
        """Texts of all recorded notifications, oldest first."""
        return [n.text for n in self.notifications]

    def errors(self) -> list[str]:
        """Texts of recorded error notifications."""
        return [n.text for n in self.notifications if n.kind is NotificationKind.ERROR]

    def clear(self) -> None:
        """Drop all recorded notifications."""
        self.notifications.clear()
