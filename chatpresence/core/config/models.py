"""Pydantic configuration models for chatpresence.

For loading logic, see loader.py.
"""

import os
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

BACKEND_URL_ENV = "CHAT_BACKEND_URL"


class AuthConfig(BaseModel):
    """Configuration for the auth backend HTTP client."""

    api_prefix: str = Field(default="/api/auth", description="Path prefix of the auth endpoints")
    token_header: str = Field(default="token", description="Request header carrying the session token")
    timeout_seconds: float = Field(default=10.0, description="HTTP request timeout in seconds")

    @field_validator("api_prefix")
    @classmethod
    def normalize_prefix(cls, v: str) -> str:
        """Ensure the prefix starts with a slash and has no trailing slash."""
        return "/" + v.strip("/") if v.strip("/") else ""


class PresenceConfig(BaseModel):
    """Configuration for the realtime presence channel."""

    enabled: bool = Field(default=True, description="Open a presence channel after authentication")
    url: str | None = Field(default=None, description="Socket.IO server URL (defaults to backend_url)")
    socketio_path: str = Field(default="socket.io", description="Socket.IO endpoint path")
    transports: list[str] | None = Field(
        default=None, description="Allowed transports (websocket, polling); None uses library default"
    )
    identity_param: str = Field(default="userId", description="Query parameter carrying the user id")
    roster_event: str = Field(default="getOnlineUsers", description="Event carrying the online user roster")
    reconnection: bool = Field(default=True, description="Let the Socket.IO client reconnect on its own")
    wait_timeout: float = Field(default=5.0, description="Seconds to wait for the initial connection")


class StorageConfig(BaseModel):
    """Configuration for token persistence."""

    path: Path = Field(
        default=Path("~/.chatpresence/session.json"),
        description="JSON file holding the persisted session token",
        validate_default=True,
    )

    @field_validator("path")
    @classmethod
    def expand_user(cls, v: Path) -> Path:
        """Expand ``~`` in the storage path."""
        return v.expanduser()


class LoggingConfig(BaseModel):
    """Configuration for logging system."""

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)")
    directory: str = Field(default="logs", description="Directory for log files")
    max_size_mb: int = Field(default=10, description="Maximum log file size in MB before rotation")
    backup_count: int = Field(default=5, description="Number of backup log files to keep")


class Config(BaseModel):
    """Root configuration for chatpresence."""

    backend_url: str = Field(description="Base URL of the chat backend, e.g. http://localhost:5000")
    auth: AuthConfig = Field(default_factory=AuthConfig)
    presence: PresenceConfig = Field(default_factory=PresenceConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig, description="Logging configuration")

    model_config = {"extra": "allow"}

    @field_validator("backend_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Validate the backend URL and drop any trailing slash."""
        v = v.strip()
        if not v:
            raise ValueError("backend_url must not be empty")
        return v.rstrip("/")

    @property
    def presence_url(self) -> str:
        """URL the presence channel connects to."""
        return (self.presence.url or self.backend_url).rstrip("/")

    @classmethod
    def from_env(cls) -> "Config":
        """Build a config from environment variables alone.

        Returns:
            Config with backend_url taken from CHAT_BACKEND_URL.

        Raises:
            ValueError: If CHAT_BACKEND_URL is not set.
        """
        backend_url = os.environ.get(BACKEND_URL_ENV)
        if not backend_url:
            raise ValueError(f"{BACKEND_URL_ENV} is not set and no config file was given")
        return cls(backend_url=backend_url)
