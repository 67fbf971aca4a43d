"""Configuration package for chatpresence.

Pydantic models plus ``load_config``; the ``${VAR}`` helpers stay in
``chatpresence.core.config.loader``.
"""

from chatpresence.core.config.loader import load_config
from chatpresence.core.config.models import (
    AuthConfig,
    Config,
    LoggingConfig,
    PresenceConfig,
    StorageConfig,
)

__all__ = [
    "AuthConfig",
    "Config",
    "LoggingConfig",
    "PresenceConfig",
    "StorageConfig",
    "load_config",
]
