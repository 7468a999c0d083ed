"""Data models shared by the codec, the storage backends and the manager."""
import time
from typing import Optional

from pydantic import BaseModel, Field


class Envelope(BaseModel):
    """Encrypted note as exchanged with storage.

    ``ciphertext`` carries the AES-GCM tag appended to the encrypted payload.
    The server stores the serialized envelope without ever parsing it.
    """

    ciphertext: bytes
    iv: bytes
    salt: bytes

    model_config = {"frozen": True}


class StoredBlob(BaseModel):
    """An opaque payload held by a storage backend."""

    id: str
    payload: bytes
    created_at: float = Field(default_factory=time.time)
    expires_at: Optional[float] = None

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        return (time.time() if now is None else now) >= self.expires_at


class NoteReceipt(BaseModel):
    """Result of a successful create."""

    id: str
    expires_in: int


class HealthReport(BaseModel):
    """Liveness of the storage backend."""

    backend_status: str  # connected | accessible | error
    backend: str
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.backend_status != "error"
