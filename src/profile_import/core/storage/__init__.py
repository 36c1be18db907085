"""Session storage abstractions for onboarding import sessions."""

from .session_storage import (
    InMemorySessionStorage,
    RedisSessionStorage,
    SessionStorage,
    create_session_storage,
)

__all__ = [
    "InMemorySessionStorage",
    "RedisSessionStorage",
    "SessionStorage",
    "create_session_storage",
]
