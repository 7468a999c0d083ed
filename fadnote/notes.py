"""
NoteManager — One-time-read lifecycle for encrypted notes.

Provides the operations the HTTP layer calls into:
- ``create(payload, ttl_seconds, note_id)`` — store an encrypted blob
- ``consume(note_id)`` — return a blob and delete it in the same step
- ``exists(note_id)`` / ``discard(note_id)``
- ``health()`` — backend liveness, never raises

A note moves ``absent → stored → absent``; it is never updated in place.

Security Note:
    Payloads are opaque ciphertext; the manager never parses them.
    Never log payload contents. Only log ids, sizes and operations.
    ``NotFound`` is raised alike for unknown, consumed and expired notes.
"""
import asyncio
import logging
from typing import Optional, Union

from .conf import MAX_PAYLOAD_SIZE, MAX_TTL
from .exceptions import (
    AlreadyExists,
    EmptyPayload,
    FadnoteError,
    InvalidTtl,
    NotFound,
    TooLarge,
    Unavailable,
)
from .identifiers import ensure_valid_id, generate_id
from .models import HealthReport, NoteReceipt
from .storage.abstract import NoteStorage

logger = logging.getLogger("fadnote.notes")

# Attempts for server-generated ids before giving up on a collision.
_MAX_ID_ATTEMPTS = 3

Payload = Union[bytes, bytearray, memoryview]


class NoteManager:
    """Create and consume notes on top of a single storage backend.

    Constructed once at startup and passed to request handlers.
    """

    def __init__(
        self,
        storage: NoteStorage,
        max_payload_size: int = MAX_PAYLOAD_SIZE,
        timeout: float = 5.0,
        max_ttl: int = MAX_TTL,
    ):
        self.storage = storage
        self.max_payload_size = max_payload_size
        self.max_ttl = max_ttl
        self._timeout = timeout

    # ------------------------------------------------------------------
    # Backend helpers
    # ------------------------------------------------------------------

    async def _call(self, operation: str, coro):
        """Await a backend call, bounded by the configured timeout."""
        try:
            return await asyncio.wait_for(coro, self._timeout)
        except asyncio.TimeoutError:
            logger.error(
                "Storage %s timed out after %.1fs on %s",
                self.storage.name, self._timeout, operation,
            )
            raise Unavailable(
                f"Storage {self.storage.name} did not answer within {self._timeout}s"
            ) from None

    def _check_payload(self, payload: Payload) -> bytes:
        size = len(payload)
        if size == 0:
            raise EmptyPayload()
        if size > self.max_payload_size:
            raise TooLarge(f"Note too large (max {self.max_payload_size} bytes)")
        return bytes(payload)

    def _check_ttl(self, ttl_seconds) -> int:
        if ttl_seconds is None:
            return self.storage.default_ttl
        try:
            ttl = int(ttl_seconds)
        except (TypeError, ValueError, OverflowError):
            raise InvalidTtl("TTL must be an integer number of seconds") from None
        if abs(ttl) > self.max_ttl:
            raise InvalidTtl(f"TTL out of range (max {self.max_ttl} seconds)")
        return ttl

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def create(
        self,
        payload: Payload,
        ttl_seconds: Optional[int] = None,
        note_id: Optional[str] = None,
    ) -> NoteReceipt:
        """Store an encrypted note that can be consumed exactly once.

        Args:
            payload: Encrypted blob, 1 byte up to ``max_payload_size``.
            ttl_seconds: Retention; the backend default when omitted.
                Zero or negative values create a note that is already expired.
            note_id: Caller-chosen id. A random id is generated when omitted.

        Returns:
            NoteReceipt with the id and the retention in seconds.

        Raises:
            InvalidId: If ``note_id`` is malformed.
            EmptyPayload / TooLarge: If the payload size is out of bounds.
            InvalidTtl: If ``ttl_seconds`` is not an integer or exceeds
                ``max_ttl`` in either direction.
            AlreadyExists: If ``note_id`` is occupied.
            Unavailable: If the backend fails or times out.
        """
        if note_id is not None:
            ensure_valid_id(note_id)
        blob = self._check_payload(payload)
        ttl = self._check_ttl(ttl_seconds)

        if note_id is not None:
            await self._call("set", self.storage.set(note_id, blob, ttl))
        else:
            for attempt in range(1, _MAX_ID_ATTEMPTS + 1):
                note_id = generate_id()
                try:
                    await self._call("set", self.storage.set(note_id, blob, ttl))
                    break
                except AlreadyExists:
                    logger.warning("Generated note id collided (attempt %d)", attempt)
                    if attempt == _MAX_ID_ATTEMPTS:
                        raise

        logger.debug("Note created: id=%s size=%d ttl=%d", note_id, len(blob), ttl)
        return NoteReceipt(id=note_id, expires_in=ttl)

    async def consume(self, note_id: str) -> bytes:
        """Return a note's payload and delete it.

        The backend's atomic get-and-delete guarantees that of two
        concurrent calls for one id, exactly one receives the payload.

        Raises:
            InvalidId: Before any storage access, if ``note_id`` is malformed.
            NotFound: If the note never existed, was already read or expired.
            Unavailable: If the backend fails or times out.
        """
        ensure_valid_id(note_id)
        blob = await self._call("take", self.storage.take(note_id))
        if blob is None:
            raise NotFound()
        logger.debug("Note consumed: id=%s size=%d", note_id, len(blob))
        return blob

    async def exists(self, note_id: str) -> bool:
        """Return True if an unexpired note is stored under ``note_id``."""
        ensure_valid_id(note_id)
        return await self._call("exists", self.storage.exists(note_id))

    async def discard(self, note_id: str) -> None:
        """Delete a note without reading it; unknown ids are ignored."""
        ensure_valid_id(note_id)
        await self._call("delete", self.storage.delete(note_id))
        logger.debug("Note discarded: id=%s", note_id)

    async def health(self) -> HealthReport:
        """Check the backend.

        Returns:
            HealthReport with ``connected``/``accessible`` or ``error``.
        """
        try:
            await self._call("ping", self.storage.ping())
        except (FadnoteError, OSError) as err:
            logger.warning("Storage %s health check failed: %s", self.storage.name, err)
            return HealthReport(
                backend_status="error", backend=self.storage.name, detail=str(err),
            )
        return HealthReport(
            backend_status=self.storage.status_label, backend=self.storage.name,
        )
