"""Session storage interface and implementations.

Provides a unified key/value interface with per-key TTL for onboarding
import sessions, backed by Redis with an in-memory fallback.
"""

from __future__ import annotations

import json
import time
from abc import ABC, abstractmethod
from typing import Any, TypeVar

from loguru import logger
from pydantic import BaseModel

from src.profile_import.runtime.config.config_data import RedisConfig

T = TypeVar("T", bound=BaseModel)


class SessionStorage(ABC):
    """Abstract interface for session storage backends."""

    @abstractmethod
    async def set(self, key: str, value: BaseModel, ttl_seconds: int) -> None:
        """Store a value with TTL, replacing any existing value.

        Args:
            key: Storage key
            value: Session data (Pydantic model)
            ttl_seconds: Time to live in seconds
        """

    @abstractmethod
    async def get(self, key: str, model_class: type[T]) -> T | None:
        """Retrieve a value.

        Args:
            key: Storage key
            model_class: Pydantic model class to deserialize to

        Returns:
            Session data or None if not found/expired
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete a value. Missing keys are ignored."""

    @abstractmethod
    async def cleanup_expired(self) -> int:
        """Clean up expired values.

        Returns:
            Number of values removed
        """

    @abstractmethod
    def is_available(self) -> bool:
        """Check if storage backend is available."""


class InMemorySessionStorage(SessionStorage):
    """In-memory session storage with TTL support."""

    def __init__(self):
        self._data: dict[str, dict[str, Any]] = {}

    async def set(self, key: str, value: BaseModel, ttl_seconds: int) -> None:
        self._data[key] = {
            "data": json.loads(value.model_dump_json()),
            "expires_at": time.time() + ttl_seconds,
        }

    async def get(self, key: str, model_class: type[T]) -> T | None:
        entry = self._data.get(key)
        if entry is None:
            return None

        if time.time() > entry["expires_at"]:
            del self._data[key]
            return None

        try:
            return model_class.model_validate(entry["data"])
        except ValueError:
            logger.warning("Dropping unreadable session entry {}", key)
            del self._data[key]
            return None

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def cleanup_expired(self) -> int:
        now = time.time()
        expired_keys = [
            key for key, entry in self._data.items() if now > entry["expires_at"]
        ]

        for key in expired_keys:
            del self._data[key]

        return len(expired_keys)

    def is_available(self) -> bool:
        """In-memory storage is always available."""
        return True


class RedisSessionStorage(SessionStorage):
    """Redis-based session storage; expiry is delegated to Redis TTLs."""

    def __init__(self, redis_client):
        self._redis = redis_client
        self._available = True

    async def set(self, key: str, value: BaseModel, ttl_seconds: int) -> None:
        try:
            await self._redis.setex(key, ttl_seconds, value.model_dump_json())
            self._available = True
        except Exception as e:
            self._available = False
            raise RuntimeError(f"Redis set failed: {e}") from e

    async def get(self, key: str, model_class: type[T]) -> T | None:
        try:
            data = await self._redis.get(key)
        except Exception as e:
            self._available = False
            raise RuntimeError(f"Redis get failed: {e}") from e

        self._available = True
        if data is None:
            return None

        if isinstance(data, bytes):
            data = data.decode("utf-8")

        try:
            return model_class.model_validate_json(data)
        except ValueError:
            logger.warning("Dropping unreadable session entry {}", key)
            await self.delete(key)
            return None

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(key)
            self._available = True
        except Exception as e:
            self._available = False
            raise RuntimeError(f"Redis delete failed: {e}") from e

    async def cleanup_expired(self) -> int:
        """Redis handles expiration automatically."""
        return 0

    def is_available(self) -> bool:
        return self._available

    async def ping(self) -> bool:
        """Test Redis connection health."""
        try:
            await self._redis.ping()
            self._available = True
            return True
        except Exception:
            self._available = False
            return False

    async def close(self) -> None:
        await self._redis.aclose()


async def create_session_storage(redis_config: RedisConfig) -> SessionStorage:
    """Create Redis storage when configured and reachable, else in-memory storage."""
    if not redis_config.enabled or not redis_config.url:
        logger.info("Redis not configured; using in-memory session storage")
        return InMemorySessionStorage()

    import redis.asyncio as redis

    redis_client = redis.from_url(
        redis_config.connection_string,
        encoding="utf-8",
        decode_responses=redis_config.decode_responses,
        socket_connect_timeout=2,
        socket_timeout=2,
    )

    redis_storage = RedisSessionStorage(redis_client)
    if await redis_storage.ping():
        logger.info("Session storage: Redis connected")
        return redis_storage

    logger.warning("Redis unavailable, using in-memory session storage")
    await redis_storage.close()
    return InMemorySessionStorage()
