"""chatpresence - client-side session and presence management for chat backends."""

__version__ = "0.1.0"
