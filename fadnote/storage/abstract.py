"""
Storage backend contract.

Backends are interchangeable strategies selected at startup; each owns its
own resources (directory, connection pool) and none inherits from another.

Every backend provides:
- ``exists(id)`` / ``get(id)`` — expired blobs are reported absent
- ``set(id, blob, ttl_seconds)`` — create-only, raises ``AlreadyExists``
- ``take(id)`` — atomic get-and-delete, the one-time-read primitive
- ``delete(id)`` — idempotent
- ``ping()`` — raises ``Unavailable`` when the backend cannot serve requests
- ``close()``

Backends without native TTL (``native_ttl = False``) also provide
``list_ids()`` and ``purge_if_expired(id)`` for the expiry sweeper.
"""
import asyncio
from typing import Optional, Protocol, runtime_checkable
from contextlib import asynccontextmanager


@runtime_checkable
class NoteStorage(Protocol):
    """Capability contract shared by every backend."""

    name: str
    status_label: str
    native_ttl: bool
    default_ttl: int

    async def exists(self, note_id: str) -> bool: ...

    async def set(self, note_id: str, blob: bytes, ttl_seconds: Optional[int] = None) -> None: ...

    async def get(self, note_id: str) -> Optional[bytes]: ...

    async def take(self, note_id: str) -> Optional[bytes]: ...

    async def delete(self, note_id: str) -> None: ...

    async def ping(self) -> None: ...

    async def close(self) -> None: ...


@runtime_checkable
class SweepableStorage(NoteStorage, Protocol):
    """Backends that need the expiry sweeper."""

    async def list_ids(self) -> list[str]: ...

    async def purge_if_expired(self, note_id: str) -> bool: ...


class KeyedLock:
    """One asyncio lock per key, discarded when nobody holds or waits on it.

    Operations on distinct keys never contend.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def __call__(self, key: str):
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if not self._waiters[key]:
                del self._waiters[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
