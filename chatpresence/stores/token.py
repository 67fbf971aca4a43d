"""Key-value stores for the persisted session token.

The file store keeps a flat JSON object on disk and rewrites it atomically on
every change, so a token written by ``login`` is still there after a restart.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from threading import Lock

logger = logging.getLogger(__name__)

TOKEN_KEY = "token"


class TokenStore(ABC):
    """Durable key-value storage for session data."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the value stored under key, or None."""
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store value under key, replacing any previous value."""
        ...

    @abstractmethod
    def remove(self, key: str) -> None:
        """Remove key. Removing a missing key is a no-op."""
        ...


class MemoryTokenStore(TokenStore):
    """In-memory store. Contents are lost when the process exits."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class FileTokenStore(TokenStore):
    """JSON file backed store.

    Thread-safe. Reads the file on every ``get`` so several processes sharing
    the same file observe each other's writes.

    Example:
        >>> store = FileTokenStore(Path("~/.chatpresence/session.json").expanduser())
        >>> store.set("token", "eyJhbGciOi...")
        >>> store.get("token")
        'eyJhbGciOi...'
    """

    def __init__(self, path: Path | str):
        """Initialize the store.

        Args:
            path: JSON file to persist into. Parent directories are created.
        """
        self.path = Path(path)
        self._lock = Lock()
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _load(self) -> dict[str, str]:
        """Load stored data. Caller must hold self._lock."""
        if not self.path.exists():
            return {}

        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except ValueError as e:
            # JSONDecodeError and UnicodeDecodeError
            logger.error(f"Corrupted token store {self.path}: {e}")
            return {}
        except OSError as e:
            logger.error(f"Could not read token store {self.path}: {e}")
            return {}

        if not isinstance(data, dict):
            logger.error(f"Invalid token store format (expected dict): {self.path}")
            return {}

        return {str(k): str(v) for k, v in data.items() if v is not None}

    def _save(self, data: dict[str, str]) -> None:
        """Persist data atomically. Caller must hold self._lock.

        Uses tmp file + rename pattern for atomicity.
        """
        tmp_path = self.path.with_suffix(".tmp")
        try:
            with tmp_path.open("w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            tmp_path.replace(self.path)
        except OSError as e:
            logger.error(f"Failed to save token store {self.path}: {e}", exc_info=True)
            raise

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self._save(data)
            logger.debug(f"Stored '{key}' in {self.path}")

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if key not in data:
                return
            del data[key]
            self._save(data)
            logger.debug(f"Removed '{key}' from {self.path}")
