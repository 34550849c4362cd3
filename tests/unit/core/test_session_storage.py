"""Unit tests for the session storage backends."""

import json
import time

import pytest

from src.provisioner.core.models.session import ApiSession
from src.provisioner.core.storage.session_storage import (
    FileSessionStorage,
    InMemorySessionStorage,
    _create_storage,
)
from src.provisioner.runtime.config.config_data import SessionCacheConfig


def make_session(expires_at: int = 4102444800) -> ApiSession:
    return ApiSession(
        domain="example.com",
        tenant_id="T-100",
        bearer_token="token-1-abcdef",
        expires_at=expires_at,
    )


class TestInMemorySessionStorage:
    """Test the in-memory backend."""

    @pytest.mark.asyncio
    async def test_set_and_get(self):
        storage = InMemorySessionStorage()

        await storage.set("directory:session:example.com", make_session(), 60)

        loaded = await storage.get("directory:session:example.com", ApiSession)
        assert loaded == make_session()
        assert await storage.exists("directory:session:example.com")

    @pytest.mark.asyncio
    async def test_expired_entry_is_dropped(self, monkeypatch):
        storage = InMemorySessionStorage()
        await storage.set("key", make_session(), 10)

        real_time = time.time()
        monkeypatch.setattr(time, "time", lambda: real_time + 11)

        assert await storage.get("key", ApiSession) is None
        assert not await storage.exists("key")

    @pytest.mark.asyncio
    async def test_cleanup_expired(self):
        storage = InMemorySessionStorage()
        await storage.set("gone", make_session(), -1)
        await storage.set("kept", make_session(), 60)

        assert await storage.cleanup_expired() == 1
        assert await storage.exists("kept")

    @pytest.mark.asyncio
    async def test_delete(self):
        storage = InMemorySessionStorage()
        await storage.set("key", make_session(), 60)

        await storage.delete("key")
        await storage.delete("key")

        assert await storage.get("key", ApiSession) is None


class TestFileSessionStorage:
    """Test the file backend."""

    @pytest.mark.asyncio
    async def test_survives_new_instance(self, tmp_path):
        await FileSessionStorage(tmp_path).set("continuation:abc", make_session(), 60)

        loaded = await FileSessionStorage(tmp_path).get("continuation:abc", ApiSession)

        assert loaded == make_session()
        files = list(tmp_path.glob("*.json"))
        assert len(files) == 1
        assert files[0].name.startswith("continuation_")

    @pytest.mark.asyncio
    async def test_expired_file_is_deleted(self, tmp_path):
        storage = FileSessionStorage(tmp_path)
        await storage.set("key", make_session(), -1)

        assert await storage.get("key", ApiSession) is None
        assert list(tmp_path.glob("*.json")) == []

    @pytest.mark.asyncio
    async def test_corrupt_file_is_deleted(self, tmp_path):
        storage = FileSessionStorage(tmp_path)
        await storage.set("key", make_session(), 60)
        path = next(tmp_path.glob("*.json"))
        path.write_text("{not json", encoding="utf-8")

        assert await storage.get("key", ApiSession) is None
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_wrong_shape_is_deleted(self, tmp_path):
        storage = FileSessionStorage(tmp_path)
        await storage.set("key", make_session(), 60)
        path = next(tmp_path.glob("*.json"))
        entry = json.loads(path.read_text(encoding="utf-8"))
        entry["data"] = {"unexpected": True}
        path.write_text(json.dumps(entry), encoding="utf-8")

        assert await storage.get("key", ApiSession) is None
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_missing_directory_is_created(self, tmp_path):
        storage = FileSessionStorage(tmp_path / "nested" / "cache")

        await storage.set("key", make_session(), 60)

        assert await storage.exists("key")
        assert storage.is_available()


class TestCreateStorage:
    @pytest.mark.asyncio
    async def test_memory_backend(self):
        storage = await _create_storage(SessionCacheConfig(backend="memory"))

        assert isinstance(storage, InMemorySessionStorage)

    @pytest.mark.asyncio
    async def test_file_backend(self, tmp_path):
        storage = await _create_storage(
            SessionCacheConfig(backend="file", data_dir=str(tmp_path))
        )

        assert isinstance(storage, FileSessionStorage)

    @pytest.mark.asyncio
    async def test_unconfigured_redis_falls_back_to_memory(self):
        storage = await _create_storage(SessionCacheConfig(backend="redis"))

        assert isinstance(storage, InMemorySessionStorage)
