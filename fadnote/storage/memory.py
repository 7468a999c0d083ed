"""
In-memory storage backend.

For tests and ephemeral deployments; nothing survives a restart. No method
awaits between reading and writing the mapping, so every operation is a
single event-loop step and needs no lock.
"""
import time
import logging
from typing import Optional

from ..conf import DEFAULT_TTL
from ..exceptions import AlreadyExists
from ..models import StoredBlob

logger = logging.getLogger("fadnote.storage")


class MemoryStorage:
    """Mapping of note id to :class:`StoredBlob` with lazy expiry."""

    name = "memory"
    status_label = "connected"
    native_ttl = False

    def __init__(self, default_ttl: int = DEFAULT_TTL, clock=time.time) -> None:
        self.default_ttl = default_ttl
        self._clock = clock
        self._data: dict[str, StoredBlob] = {}

    def _live(self, note_id: str) -> Optional[StoredBlob]:
        """Return the blob for ``note_id``, dropping it first if expired."""
        item = self._data.get(note_id)
        if item is None:
            return None
        if item.is_expired(self._clock()):
            del self._data[note_id]
            logger.debug("Memory storage expired note=%s", note_id)
            return None
        return item

    async def exists(self, note_id: str) -> bool:
        return self._live(note_id) is not None

    async def set(self, note_id: str, blob: bytes, ttl_seconds: Optional[int] = None) -> None:
        if self._live(note_id) is not None:
            raise AlreadyExists()
        now = self._clock()
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        self._data[note_id] = StoredBlob(
            id=note_id, payload=bytes(blob), created_at=now, expires_at=now + ttl,
        )

    async def get(self, note_id: str) -> Optional[bytes]:
        item = self._live(note_id)
        return None if item is None else item.payload

    async def take(self, note_id: str) -> Optional[bytes]:
        item = self._live(note_id)
        if item is None:
            return None
        del self._data[note_id]
        return item.payload

    async def delete(self, note_id: str) -> None:
        self._data.pop(note_id, None)

    async def ping(self) -> None:
        # Always reachable.
        return None

    async def close(self) -> None:
        self._data.clear()

    async def list_ids(self) -> list[str]:
        return list(self._data)

    async def purge_if_expired(self, note_id: str) -> bool:
        item = self._data.get(note_id)
        if item is None or not item.is_expired(self._clock()):
            return False
        del self._data[note_id]
        return True

    def __len__(self) -> int:
        return len(self._data)
