"""Shared fixtures for the fadnote test-suite."""
import time
import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from fadnote.notes import NoteManager
from fadnote.storage import FilesystemStorage, MemoryStorage, RedisStorage


class FakeRedis:
    """Just enough of ``redis.asyncio.Redis`` for RedisStorage."""

    def __init__(self):
        self.data: dict[str, tuple[bytes, float | None]] = {}
        self.ttls: dict[str, int] = {}
        self.closed = False

    def _alive(self, key):
        item = self.data.get(key)
        if item is None:
            return None
        value, expires = item
        if expires is not None and time.monotonic() >= expires:
            del self.data[key]
            return None
        return value

    async def exists(self, *keys):
        return sum(1 for key in keys if self._alive(key) is not None)

    async def set(self, key, value, ex=None, nx=False):
        if nx and self._alive(key) is not None:
            return None
        expires = time.monotonic() + ex if ex else None
        self.data[key] = (value, expires)
        if ex:
            self.ttls[key] = ex
        return True

    async def get(self, key):
        return self._alive(key)

    async def getdel(self, key):
        value = self._alive(key)
        self.data.pop(key, None)
        return value

    async def delete(self, *keys):
        return sum(1 for key in keys if self.data.pop(key, None) is not None)

    async def ping(self):
        return True

    async def aclose(self):
        self.closed = True

    def expire_now(self, key):
        value, _ = self.data[key]
        self.data[key] = (value, time.monotonic() - 1)


class BrokenRedis(FakeRedis):
    """Every command fails as if the server were unreachable."""

    async def _fail(self, *args, **kwargs):
        raise RedisConnectionError("Connection refused")

    exists = set = get = getdel = delete = ping = _fail


class SlowStorage(MemoryStorage):
    """Memory storage whose calls never finish in time."""

    async def take(self, note_id):
        await asyncio.sleep(10)

    async def ping(self):
        await asyncio.sleep(10)


@pytest.fixture
def memory_storage():
    return MemoryStorage()


@pytest.fixture
def fs_storage(tmp_path):
    return FilesystemStorage(base_path=str(tmp_path / "notes"))


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def redis_storage(fake_redis):
    return RedisStorage(client=fake_redis, prefix="test:")


@pytest.fixture(params=["memory", "filesystem", "redis"])
def storage(request, tmp_path):
    """Each backend in turn, for contract tests."""
    if request.param == "memory":
        return MemoryStorage()
    if request.param == "filesystem":
        return FilesystemStorage(base_path=str(tmp_path / "notes"))
    return RedisStorage(client=FakeRedis(), prefix="test:")


@pytest.fixture
def manager(memory_storage):
    return NoteManager(memory_storage)
