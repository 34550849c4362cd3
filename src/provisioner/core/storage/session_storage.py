"""Session storage interface and implementations.

Holds data that must outlive a single request: directory API sessions (so a
restarted process does not re-authenticate) and suspended-login
continuations. Values are pydantic models stored as JSON with a TTL.
"""

from __future__ import annotations

import hashlib
import json
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError

from src.provisioner.runtime.config.config_data import SessionCacheConfig

T = TypeVar("T", bound=BaseModel)


class SessionStorage(ABC):
    """Abstract interface for session storage backends."""

    @abstractmethod
    async def set(self, key: str, value: BaseModel, ttl_seconds: int) -> None:
        """Store a value with TTL.

        Args:
            key: Storage key
            value: Data to store (Pydantic model)
            ttl_seconds: Time to live in seconds
        """

    @abstractmethod
    async def get(self, key: str, model_class: type[T]) -> T | None:
        """Retrieve a value.

        Args:
            key: Storage key
            model_class: Pydantic model class to deserialize to

        Returns:
            The value or None if not found/expired
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete a value."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check if a non-expired value is stored under ``key``."""

    @abstractmethod
    async def cleanup_expired(self) -> int:
        """Clean up expired values.

        Returns:
            Number of values cleaned up
        """

    @abstractmethod
    def is_available(self) -> bool:
        """Check if storage backend is available."""


class InMemorySessionStorage(SessionStorage):
    """In-memory storage with TTL support. Lost on restart."""

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
        except ValidationError:
            del self._data[key]
            return None

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def exists(self, key: str) -> bool:
        entry = self._data.get(key)
        if entry is None:
            return False
        if time.time() > entry["expires_at"]:
            del self._data[key]
            return False
        return True

    async def cleanup_expired(self) -> int:
        now = time.time()
        expired_keys = [
            key for key, entry in self._data.items() if now > entry["expires_at"]
        ]
        for key in expired_keys:
            del self._data[key]
        return len(expired_keys)

    def is_available(self) -> bool:
        return True


class FileSessionStorage(SessionStorage):
    """One JSON file per key under a data directory.

    Survives process restarts without any extra infrastructure. Expired or
    unreadable files are removed when they are found.
    """

    def __init__(self, data_dir: Path | str):
        self._dir = Path(data_dir)
        self._available = True

    def _path(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:32]
        prefix = key.split(":", 1)[0]
        return self._dir / f"{prefix}_{digest}.json"

    def _read(self, path: Path) -> dict[str, Any] | None:
        try:
            entry = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning("Unable to read session cache file {}: {}", path, e)
            path.unlink(missing_ok=True)
            return None

        if not isinstance(entry, dict) or "expires_at" not in entry:
            logger.warning("Malformed session cache file, deleting: {}", path)
            path.unlink(missing_ok=True)
            return None

        if time.time() > entry["expires_at"]:
            logger.debug("Session cache file has expired, deleting: {}", path)
            path.unlink(missing_ok=True)
            return None

        return entry

    async def set(self, key: str, value: BaseModel, ttl_seconds: int) -> None:
        path = self._path(key)
        entry = {
            "key": key,
            "data": json.loads(value.model_dump_json()),
            "expires_at": time.time() + ttl_seconds,
        }
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".tmp")
            tmp.write_text(json.dumps(entry), encoding="utf-8")
            tmp.replace(path)
            self._available = True
        except OSError as e:
            self._available = False
            raise RuntimeError(f"Session cache write failed: {e}") from e

    async def get(self, key: str, model_class: type[T]) -> T | None:
        path = self._path(key)
        entry = self._read(path)
        if entry is None:
            return None

        try:
            return model_class.model_validate(entry["data"])
        except (KeyError, ValidationError):
            logger.warning("Session cache file does not hold a {}, deleting: {}", model_class.__name__, path)
            path.unlink(missing_ok=True)
            return None

    async def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    async def exists(self, key: str) -> bool:
        return self._read(self._path(key)) is not None

    async def cleanup_expired(self) -> int:
        if not self._dir.exists():
            return 0
        removed = 0
        for path in self._dir.glob("*.json"):
            if self._read(path) is None:
                removed += 1
        return removed

    def is_available(self) -> bool:
        return self._available


class RedisSessionStorage(SessionStorage):
    """Redis-based storage with serialization."""

    def __init__(self, redis_client):
        self._redis = redis_client
        self._available = True

    async def set(self, key: str, value: BaseModel, ttl_seconds: int) -> None:
        try:
            await self._redis.setex(key, max(1, ttl_seconds), value.model_dump_json())
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

        if data is None:
            return None
        if isinstance(data, bytes):
            data = data.decode("utf-8")

        try:
            return model_class.model_validate_json(data)
        except ValidationError:
            logger.warning("Discarding malformed Redis entry: {}", key)
            await self.delete(key)
            return None

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(key)
            self._available = True
        except Exception as e:
            self._available = False
            raise RuntimeError(f"Redis delete failed: {e}") from e

    async def exists(self, key: str) -> bool:
        try:
            result = await self._redis.exists(key)
            self._available = True
            return bool(result)
        except Exception as e:
            self._available = False
            raise RuntimeError(f"Redis exists failed: {e}") from e

    async def cleanup_expired(self) -> int:
        """Redis handles expiration automatically."""
        return 0

    def is_available(self) -> bool:
        return self._available

    async def ping(self) -> bool:
        try:
            await self._redis.ping()
            self._available = True
            return True
        except Exception:
            self._available = False
            return False


_storage: SessionStorage | None = None


async def _create_storage(config: SessionCacheConfig) -> SessionStorage:
    """Build the configured backend; Redis falls back to in-memory when unreachable."""
    if config.backend == "memory":
        return InMemorySessionStorage()

    if config.backend == "file":
        logger.info("Session storage: files under {}", config.data_dir)
        return FileSessionStorage(config.data_path)

    try:
        import redis.asyncio as redis

        if not config.redis.url:
            raise RuntimeError("Redis not configured")

        redis_client = redis.from_url(
            config.redis.connection_string,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=config.redis.socket_connect_timeout,
            socket_timeout=config.redis.socket_timeout,
        )
        redis_storage = RedisSessionStorage(redis_client)
        if await redis_storage.ping():
            logger.info("Session storage: Redis connected")
            return redis_storage
        raise RuntimeError("Redis ping failed")

    except Exception as e:
        logger.warning("Redis unavailable ({}), using in-memory session storage", e)
        return InMemorySessionStorage()


async def get_session_storage() -> SessionStorage:
    """Get the process-wide storage instance, creating it on first use."""
    global _storage

    if _storage is None:
        from src.provisioner.runtime.context import get_config

        _storage = await _create_storage(get_config().session_cache)

    return _storage


def _reset_storage() -> None:
    """Reset storage instance (for testing)."""
    global _storage
    _storage = None
