"""
Filesystem storage backend.

For local development and simple deployments. Each note is two files in
one directory:

    <id>.enc        raw encrypted payload
    <id>.enc.meta   {"created_at": <epoch>, "expires_at": <epoch>}

Identifiers are re-sanitized before any path is built. Payloads are written
to a temporary file and published with an exclusive hard link, so a note is
either fully present or absent. Reads claim the payload with an atomic
rename, so only one reader can ever obtain it. Blocking I/O runs in worker
threads; a per-id asyncio lock orders operations on the same note.

There is no native expiry: expired notes are removed lazily when touched
and in bulk by :class:`fadnote.sweeper.ExpirySweeper`, which also reclaims
temp files and expiry records left behind by interrupted operations.
"""
import os
import time
import asyncio
import logging
import secrets
from typing import Optional
from contextlib import suppress

import orjson

from ..conf import DEFAULT_TTL
from ..exceptions import AlreadyExists, FadnoteError, Unavailable
from ..identifiers import sanitize_id
from .abstract import KeyedLock

logger = logging.getLogger("fadnote.storage")

NOTE_SUFFIX = ".enc"
META_SUFFIX = ".meta"
_TMP_PREFIX = ".tmp-"
ORPHAN_GRACE = 3600


class FilesystemStorage:
    """Directory of encrypted note files with sidecar expiry records."""

    name = "filesystem"
    status_label = "accessible"
    native_ttl = False

    def __init__(
        self,
        base_path: str = "./data/notes",
        default_ttl: int = DEFAULT_TTL,
        clock=time.time,
        orphan_grace: float = ORPHAN_GRACE,
    ) -> None:
        self.base_path = os.path.abspath(base_path)
        self.default_ttl = default_ttl
        self.orphan_grace = orphan_grace
        self._clock = clock
        self._locks = KeyedLock()
        try:
            os.makedirs(self.base_path, exist_ok=True)
        except OSError as err:
            logger.error("Failed to create storage directory %s: %s", self.base_path, err)
            raise Unavailable(f"Cannot create storage directory: {err}") from err

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def _note_path(self, note_id: str) -> str:
        return os.path.join(self.base_path, f"{sanitize_id(note_id)}{NOTE_SUFFIX}")

    def _meta_path(self, note_id: str) -> str:
        return self._note_path(note_id) + META_SUFFIX

    def _tmp_path(self) -> str:
        return os.path.join(self.base_path, f"{_TMP_PREFIX}{secrets.token_hex(8)}")

    # ------------------------------------------------------------------
    # Blocking helpers (worker thread)
    # ------------------------------------------------------------------

    def _read_expiry(self, note_id: str) -> Optional[float]:
        try:
            with open(self._meta_path(note_id), "rb") as fp:
                meta = orjson.loads(fp.read())
        except FileNotFoundError:
            return None
        except orjson.JSONDecodeError:
            logger.warning("Unreadable expiry record for note=%s", note_id)
            return None
        expires_at = meta.get("expires_at") if isinstance(meta, dict) else None
        if isinstance(expires_at, (int, float)):
            return float(expires_at)
        return None

    def _is_expired(self, note_id: str) -> bool:
        expires_at = self._read_expiry(note_id)
        return expires_at is not None and self._clock() >= expires_at

    def _remove(self, note_id: str) -> bool:
        """Delete both artifacts; return True if a payload was removed."""
        removed = False
        with suppress(FileNotFoundError):
            os.unlink(self._note_path(note_id))
            removed = True
        with suppress(FileNotFoundError):
            os.unlink(self._meta_path(note_id))
        return removed

    def _expire_if_due(self, note_id: str) -> bool:
        if self._is_expired(note_id):
            self._remove(note_id)
            logger.debug("Filesystem storage expired note=%s", note_id)
            return True
        return False

    def _exists_sync(self, note_id: str) -> bool:
        if self._expire_if_due(note_id):
            return False
        return os.path.exists(self._note_path(note_id))

    def _set_sync(self, note_id: str, blob: bytes, ttl: int) -> None:
        path = self._note_path(note_id)
        self._expire_if_due(note_id)
        now = self._clock()
        tmp = self._tmp_path()
        meta_tmp = self._tmp_path()
        try:
            with open(tmp, "wb") as fp:
                fp.write(blob)
            with open(meta_tmp, "wb") as fp:
                fp.write(orjson.dumps({"created_at": now, "expires_at": now + ttl}))
            try:
                os.link(tmp, path)
            except FileExistsError:
                raise AlreadyExists() from None
            try:
                os.replace(meta_tmp, path + META_SUFFIX)
            except OSError:
                # a payload without its expiry record would never expire
                with suppress(FileNotFoundError):
                    os.unlink(path)
                raise
        finally:
            for leftover in (tmp, meta_tmp):
                with suppress(FileNotFoundError):
                    os.unlink(leftover)

    def _get_sync(self, note_id: str) -> Optional[bytes]:
        if self._expire_if_due(note_id):
            return None
        try:
            with open(self._note_path(note_id), "rb") as fp:
                return fp.read()
        except FileNotFoundError:
            return None

    def _take_sync(self, note_id: str) -> Optional[bytes]:
        if self._expire_if_due(note_id):
            return None
        claim = self._tmp_path()
        try:
            os.rename(self._note_path(note_id), claim)
        except FileNotFoundError:
            return None
        try:
            with open(claim, "rb") as fp:
                return fp.read()
        finally:
            with suppress(FileNotFoundError):
                os.unlink(claim)
            with suppress(FileNotFoundError):
                os.unlink(self._meta_path(note_id))

    def _purge_sync(self, note_id: str) -> bool:
        if not self._is_expired(note_id):
            return False
        return self._remove(note_id)

    def _list_sync(self) -> list[str]:
        ids = []
        with os.scandir(self.base_path) as entries:
            for entry in entries:
                name = entry.name
                if name.startswith(".") or not name.endswith(NOTE_SUFFIX):
                    continue
                ids.append(name[:-len(NOTE_SUFFIX)])
        return ids

    def _scan_orphans_sync(self) -> tuple[int, list[str]]:
        """Remove stale temp files; return the count and ids of bare sidecars."""
        cutoff = self._clock() - self.orphan_grace
        meta_suffix = NOTE_SUFFIX + META_SUFFIX
        removed = 0
        bare = []
        with os.scandir(self.base_path) as entries:
            for entry in entries:
                name = entry.name
                if name.startswith(_TMP_PREFIX):
                    try:
                        if entry.stat().st_mtime > cutoff:
                            continue
                        os.unlink(entry.path)
                    except FileNotFoundError:
                        continue
                    removed += 1
                elif name.endswith(meta_suffix) and not name.startswith("."):
                    note_id = name[:-len(meta_suffix)]
                    if not os.path.exists(self._note_path(note_id)):
                        bare.append(note_id)
        return removed, bare

    def _drop_bare_meta_sync(self, note_id: str) -> bool:
        if os.path.exists(self._note_path(note_id)):
            return False
        try:
            os.unlink(self._meta_path(note_id))
        except FileNotFoundError:
            return False
        return True

    def _ping_sync(self) -> None:
        if not os.path.isdir(self.base_path):
            raise Unavailable(f"Storage directory {self.base_path} does not exist")
        if not os.access(self.base_path, os.R_OK | os.W_OK | os.X_OK):
            raise Unavailable(f"Storage directory {self.base_path} is not accessible")

    # ------------------------------------------------------------------
    # Async API
    # ------------------------------------------------------------------

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except FadnoteError:
            raise
        except OSError as err:
            logger.error("Filesystem storage error in %s: %s", func.__name__, err)
            raise Unavailable(f"Filesystem storage error: {err.strerror or err}") from err

    async def exists(self, note_id: str) -> bool:
        async with self._locks(sanitize_id(note_id)):
            return await self._run(self._exists_sync, note_id)

    async def set(self, note_id: str, blob: bytes, ttl_seconds: Optional[int] = None) -> None:
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        async with self._locks(sanitize_id(note_id)):
            await self._run(self._set_sync, note_id, bytes(blob), ttl)

    async def get(self, note_id: str) -> Optional[bytes]:
        async with self._locks(sanitize_id(note_id)):
            return await self._run(self._get_sync, note_id)

    async def take(self, note_id: str) -> Optional[bytes]:
        async with self._locks(sanitize_id(note_id)):
            return await self._run(self._take_sync, note_id)

    async def delete(self, note_id: str) -> None:
        async with self._locks(sanitize_id(note_id)):
            await self._run(self._remove, note_id)

    async def ping(self) -> None:
        await self._run(self._ping_sync)

    async def close(self) -> None:
        return None

    async def list_ids(self) -> list[str]:
        return await self._run(self._list_sync)

    async def purge_if_expired(self, note_id: str) -> bool:
        async with self._locks(sanitize_id(note_id)):
            return await self._run(self._purge_sync, note_id)

    async def reclaim_orphans(self) -> int:
        """Delete leftovers that belong to no readable note.

        Temp files older than ``orphan_grace`` seconds (interrupted writes
        and claimed payloads) and expiry records whose payload is gone.

        Returns:
            Number of files removed.
        """
        removed, bare = await self._run(self._scan_orphans_sync)
        for note_id in bare:
            async with self._locks(note_id):
                if await self._run(self._drop_bare_meta_sync, note_id):
                    removed += 1
        if removed:
            logger.info("Filesystem storage removed %d orphaned file(s)", removed)
        return removed
