"""Logging configuration and setup for chatpresence."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    level: str = "INFO",
    directory: str | Path = "logs",
    max_size_mb: int = 10,
    backup_count: int = 5,
) -> None:
    """Configure root logger with file and console handlers.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        directory: Directory for log files.
        max_size_mb: Maximum size in MB before rotation.
        backup_count: Number of backup files to keep.
    """
    log_dir = Path(directory)
    log_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(getattr(logging, level.upper()))
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    file_handler = RotatingFileHandler(
        log_dir / "chatpresence.log",
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(getattr(logging, level.upper()))
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # socketio/engineio are chatty at INFO
    for noisy in ("socketio", "engineio", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.info(f"Logging initialized: level={level}, directory={log_dir}")


def mask_token(token: str | None, visible: int = 6) -> str:
    """Render a token for log output without exposing it.

    Args:
        token: Session token or None.
        visible: Number of leading characters to keep.

    Returns:
        Masked token like ``eyJhbG...`` or ``<none>``.
    """
    if not token:
        return "<none>"
    if len(token) <= visible:
        return "***"
    return f"{token[:visible]}..."
