"""Load the YAML config file, resolving ``${VAR}`` references from the environment.

``${VAR:-fallback}`` supplies a value for variables that are not set, so a
config can default ``backend_url`` to a local server.
"""

import os
import re
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml

from chatpresence.core.config.models import Config

_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


def _map_strings(obj: Any, fn: Callable[[str], Any]) -> Any:
    """Apply fn to every string inside nested dicts and lists."""
    if isinstance(obj, dict):
        return {key: _map_strings(value, fn) for key, value in obj.items()}
    if isinstance(obj, list):
        return [_map_strings(item, fn) for item in obj]
    if isinstance(obj, str):
        return fn(obj)
    return obj


def expand_env_vars(value: str) -> str:
    """Replace ``${VAR}`` and ``${VAR:-fallback}`` in value.

    Unset variables without a fallback are left as written so that
    ``check_unexpanded_vars`` can report them.

    Examples:
        >>> os.environ["CHAT_BACKEND_URL"] = "http://localhost:5000"
        >>> expand_env_vars("${CHAT_BACKEND_URL}")
        'http://localhost:5000'
        >>> expand_env_vars("${CHAT_SOCKET_PATH:-socket.io}")
        'socket.io'
    """

    def resolve(match: re.Match[str]) -> str:
        name, fallback = match.group(1), match.group(2)
        if name in os.environ:
            return os.environ[name]
        return fallback if fallback is not None else match.group(0)

    return _VAR_PATTERN.sub(resolve, value)


def expand_env_vars_recursive(obj: Any) -> Any:
    """Expand environment references in every string of a parsed YAML document."""
    return _map_strings(obj, expand_env_vars)


def check_unexpanded_vars(data: Any, source: str) -> None:
    """Raise if any ``${VAR}`` reference survived expansion.

    Args:
        data: Expanded configuration data.
        source: Label used in the error message, usually the file path.

    Raises:
        ValueError: Naming every unresolved variable.
    """
    unresolved: set[str] = set()

    def collect(text: str) -> str:
        unresolved.update(match.group(1) for match in _VAR_PATTERN.finditer(text))
        return text

    _map_strings(data, collect)
    if unresolved:
        names = ", ".join(f"${{{name}}}" for name in sorted(unresolved))
        raise ValueError(
            f"Unresolved environment variable(s) in {source}: {names}. "
            f"Set them (a .env file works) or give a ${{VAR:-default}}."
        )


def load_config(path: Path | str) -> Config:
    """Load configuration from a YAML file with environment variable expansion.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Parsed Config object.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        yaml.YAMLError: If the YAML is malformed.
        ValueError: If a ``${VAR}`` cannot be resolved or a value is invalid.
    """
    config_path = Path(path).expanduser()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with config_path.open(encoding="utf-8") as f:
        data: dict[str, Any] = yaml.safe_load(f) or {}

    data = expand_env_vars_recursive(data)
    check_unexpanded_vars(data, source=str(config_path))

    return Config(**data)
