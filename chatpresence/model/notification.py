"""Domain models for user-facing notifications."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class NotificationKind(Enum):
    """Kind of user-facing notification."""

    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    """A notification emitted by the session manager."""

    kind: NotificationKind
    text: str
    timestamp: datetime = field(default_factory=datetime.now)
