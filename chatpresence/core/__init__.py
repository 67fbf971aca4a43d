"""Core infrastructure for chatpresence: configuration, logging, notifications."""
