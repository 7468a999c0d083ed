"""
Redis storage backend.

For production self-hosted deployments. Expiry is native: every key is
written with a TTL (the default when none is given), otherwise it would
persist indefinitely.

- ``set``  → ``SET key blob NX EX ttl`` (create-only, atomic)
- ``take`` → ``GETDEL key`` (atomic read-and-delete, Redis >= 6.2)
"""
import logging
from typing import Any, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from ..conf import DEFAULT_TTL
from ..exceptions import AlreadyExists, Unavailable

logger = logging.getLogger("fadnote.storage")


class RedisStorage:
    """Notes as plain redis string keys under a common prefix."""

    name = "redis"
    status_label = "connected"
    native_ttl = True

    def __init__(
        self,
        url: Optional[str] = None,
        prefix: str = "fadnote:",
        default_ttl: int = DEFAULT_TTL,
        timeout: float = 5.0,
        client: Any = None,
    ) -> None:
        self.prefix = prefix
        self.default_ttl = default_ttl
        if client is None:
            client = aioredis.from_url(
                url or "redis://localhost:6379",
                socket_timeout=timeout,
                socket_connect_timeout=timeout,
            )
        self._redis = client

    def _key(self, note_id: str) -> str:
        """Build redis key."""
        return f"{self.prefix}{note_id}"

    def _unavailable(self, operation: str, err: Exception) -> Unavailable:
        logger.error("Redis storage error in %s: %s", operation, err)
        return Unavailable(f"Redis storage error: {err}")

    async def exists(self, note_id: str) -> bool:
        try:
            return await self._redis.exists(self._key(note_id)) == 1
        except RedisError as err:
            raise self._unavailable("exists", err) from err

    async def set(self, note_id: str, blob: bytes, ttl_seconds: Optional[int] = None) -> None:
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        key = self._key(note_id)
        try:
            if ttl <= 0:
                # Born expired: nothing to write, but an occupied id still collides.
                if await self._redis.exists(key):
                    raise AlreadyExists()
                logger.debug("Redis storage skipped already-expired note=%s", note_id)
                return
            created = await self._redis.set(key, bytes(blob), ex=ttl, nx=True)
        except RedisError as err:
            raise self._unavailable("set", err) from err
        if not created:
            raise AlreadyExists()

    async def get(self, note_id: str) -> Optional[bytes]:
        try:
            return await self._redis.get(self._key(note_id))
        except RedisError as err:
            raise self._unavailable("get", err) from err

    async def take(self, note_id: str) -> Optional[bytes]:
        try:
            return await self._redis.getdel(self._key(note_id))
        except RedisError as err:
            raise self._unavailable("take", err) from err

    async def delete(self, note_id: str) -> None:
        try:
            await self._redis.delete(self._key(note_id))
        except RedisError as err:
            raise self._unavailable("delete", err) from err

    async def ping(self) -> None:
        try:
            await self._redis.ping()
        except (RedisError, OSError) as err:
            raise self._unavailable("ping", err) from err

    async def close(self) -> None:
        await self._redis.aclose()
