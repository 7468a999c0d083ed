"""Storage backends for encrypted notes.

The backend is chosen once at startup by :func:`create_storage` and handed
to :class:`fadnote.notes.NoteManager`.
"""
import logging

from ..conf import NoteConfig
from .abstract import NoteStorage, SweepableStorage, KeyedLock
from .memory import MemoryStorage
from .filesystem import FilesystemStorage
from .redis import RedisStorage

logger = logging.getLogger("fadnote.storage")


def create_storage(config: NoteConfig) -> NoteStorage:
    """Build the backend named by ``config.storage_type``."""
    if config.storage_type == "redis":
        storage = RedisStorage(
            url=config.redis_url,
            prefix=config.redis_prefix,
            default_ttl=config.default_ttl,
            timeout=config.backend_timeout,
        )
    elif config.storage_type == "memory":
        storage = MemoryStorage(default_ttl=config.default_ttl)
    else:
        storage = FilesystemStorage(
            base_path=config.fs_storage_path,
            default_ttl=config.default_ttl,
        )
    logger.info("Storage backend: %s", storage.name)
    return storage


__all__ = [
    "NoteStorage",
    "SweepableStorage",
    "KeyedLock",
    "MemoryStorage",
    "FilesystemStorage",
    "RedisStorage",
    "create_storage",
]
