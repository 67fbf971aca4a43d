"""Persistence layer for chatpresence.

- TokenStore: key-value interface for persisted session data
- FileTokenStore: JSON file backed store, durable across restarts
- MemoryTokenStore: process-local store
"""

from chatpresence.stores.token import TOKEN_KEY, FileTokenStore, MemoryTokenStore, TokenStore

__all__ = [
    "TOKEN_KEY",
    "FileTokenStore",
    "MemoryTokenStore",
    "TokenStore",
]
