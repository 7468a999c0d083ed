"""FadNote — one-time-read storage for client-side encrypted notes.

Security Note (Threat Model):
    Notes are encrypted before they reach the server and the key travels
    only in the URL fragment, so the server holds ciphertext and nothing
    else. A note is deleted on its first read or when its TTL passes,
    whichever comes first.
"""

from .version import __version__
from .conf import NoteConfig
from .crypto import (
    generate_key,
    encrypt_note,
    decrypt_note,
    seal,
    unseal,
)
from .exceptions import (
    FadnoteError,
    InvalidId,
    AlreadyExists,
    EmptyPayload,
    TooLarge,
    InvalidTtl,
    NotFound,
    DecryptionError,
    Unavailable,
)
from .identifiers import generate_id, validate_id
from .models import Envelope, NoteReceipt, HealthReport
from .notes import NoteManager
from .storage import create_storage
from .sweeper import ExpirySweeper

__all__ = [
    "__version__",
    "NoteConfig",
    "generate_key",
    "encrypt_note",
    "decrypt_note",
    "seal",
    "unseal",
    "FadnoteError",
    "InvalidId",
    "AlreadyExists",
    "EmptyPayload",
    "TooLarge",
    "InvalidTtl",
    "NotFound",
    "DecryptionError",
    "Unavailable",
    "generate_id",
    "validate_id",
    "Envelope",
    "NoteReceipt",
    "HealthReport",
    "NoteManager",
    "create_storage",
    "ExpirySweeper",
]
