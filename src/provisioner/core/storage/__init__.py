"""Storage for directory sessions and suspended logins."""

from .session_storage import (
    FileSessionStorage,
    InMemorySessionStorage,
    RedisSessionStorage,
    SessionStorage,
    get_session_storage,
)

__all__ = [
    "FileSessionStorage",
    "InMemorySessionStorage",
    "RedisSessionStorage",
    "SessionStorage",
    "get_session_storage",
]
