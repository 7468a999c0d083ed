"""
Note Crypto Core — Key generation, key derivation, encryption/decryption
and envelope serialization.

Implements the client-side protocol for a note:
- Key: 32 random bytes as unpadded URL-safe base64 (travels in the URL fragment)
- Derivation: PBKDF2-HMAC-SHA256(key, salt 16B, 100k iterations) → AES-256 key
- Encryption: AES-256-GCM, random 96-bit iv, tag appended to the ciphertext
- Wire blob: JSON {"ciphertext": b64, "iv": b64, "salt": b64}

Security Note:
    This module runs on the producer/consumer side only. The server stores
    the wire blob and never sees the key or the plaintext.
    Never log plaintext, ciphertext or key values.
"""
import base64
import binascii
import logging
import secrets
from typing import Optional, Union
from urllib.parse import urlsplit

import orjson
from pydantic import ValidationError
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .exceptions import DecryptionError
from .models import Envelope

logger = logging.getLogger("fadnote.crypto")

KEY_SIZE = 32  # 256-bit key material
KEY_LENGTH = 32  # AES-256
IV_SIZE = 12  # 96-bit nonce
SALT_SIZE = 16
TAG_SIZE = 16
PBKDF2_ITERATIONS = 100_000


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------

def generate_key() -> str:
    """Generate a fresh 256-bit decryption key.

    Returns:
        Unpadded URL-safe base64 string (43 characters).
    """
    return base64.urlsafe_b64encode(secrets.token_bytes(KEY_SIZE)).rstrip(b"=").decode("ascii")


def derive_key(key: str, salt: bytes, iterations: int = PBKDF2_ITERATIONS) -> bytes:
    """Derive a 32-byte AES key from the note key using PBKDF2-HMAC-SHA256.

    Args:
        key: Note key as handed to the consumer.
        salt: Per-encryption random salt.
        iterations: PBKDF2 work factor.

    Returns:
        32-byte derived key.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(key.encode("utf-8"))


# ---------------------------------------------------------------------------
# Encryption
# ---------------------------------------------------------------------------

def encrypt_note(
    plaintext: Union[str, bytes],
    key: Optional[str] = None,
) -> tuple[Envelope, str]:
    """Encrypt a note.

    A new salt and iv are drawn for every call, so encrypting the same
    plaintext twice never yields the same envelope.

    Args:
        plaintext: Note content; ``str`` is encoded as UTF-8.
        key: Existing note key. A fresh one is generated when omitted.

    Returns:
        Tuple of (envelope, key).
    """
    if isinstance(plaintext, str):
        plaintext = plaintext.encode("utf-8")
    if key is None:
        key = generate_key()
    salt = secrets.token_bytes(SALT_SIZE)
    iv = secrets.token_bytes(IV_SIZE)
    cipher = AESGCM(derive_key(key, salt))
    ct = cipher.encrypt(iv, plaintext, None)
    return Envelope(ciphertext=ct, iv=iv, salt=salt), key


def decrypt_note(envelope: Envelope, key: str) -> bytes:
    """Decrypt a note envelope.

    Args:
        envelope: Envelope produced by :func:`encrypt_note`.
        key: Note key returned alongside the envelope.

    Returns:
        Decrypted plaintext bytes.

    Raises:
        DecryptionError: Wrong key, tampered ciphertext or malformed envelope.
            Nothing is returned when authentication fails.
    """
    if len(envelope.iv) != IV_SIZE:
        raise DecryptionError(
            f"iv must be {IV_SIZE} bytes, got {len(envelope.iv)}"
        )
    if len(envelope.salt) != SALT_SIZE:
        raise DecryptionError(
            f"salt must be {SALT_SIZE} bytes, got {len(envelope.salt)}"
        )
    if len(envelope.ciphertext) < TAG_SIZE:
        raise DecryptionError(
            f"ciphertext too short: {len(envelope.ciphertext)} bytes "
            f"(minimum {TAG_SIZE})"
        )
    if not isinstance(key, str) or not key:
        raise DecryptionError("Decryption key is missing")
    try:
        cipher = AESGCM(derive_key(key, envelope.salt))
    except UnicodeEncodeError:
        raise DecryptionError("Decryption key is not valid text") from None
    try:
        return cipher.decrypt(envelope.iv, envelope.ciphertext, None)
    except InvalidTag:
        raise DecryptionError(
            "Authentication failed: wrong key or tampered note"
        ) from None


def decrypt_text(envelope: Envelope, key: str) -> str:
    """Decrypt a note envelope whose plaintext is UTF-8 text."""
    data = decrypt_note(envelope, key)
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as err:
        raise DecryptionError("Decrypted note is not valid UTF-8") from err


# ---------------------------------------------------------------------------
# Envelope serialization
# ---------------------------------------------------------------------------

def envelope_to_bytes(envelope: Envelope) -> bytes:
    """Serialize an envelope to the JSON wire blob.

    Returns:
        orjson-encoded bytes with standard base64 fields.
    """
    return orjson.dumps({
        "ciphertext": base64.b64encode(envelope.ciphertext).decode("ascii"),
        "iv": base64.b64encode(envelope.iv).decode("ascii"),
        "salt": base64.b64encode(envelope.salt).decode("ascii"),
    })


def envelope_from_bytes(blob: bytes) -> Envelope:
    """Parse a JSON wire blob back into an envelope.

    Raises:
        DecryptionError: If the blob is not a well-formed envelope.
    """
    try:
        parsed = orjson.loads(blob)
    except orjson.JSONDecodeError as err:
        raise DecryptionError("Envelope is not valid JSON") from err
    if not isinstance(parsed, dict):
        raise DecryptionError("Envelope must be a JSON object")
    fields = {}
    for name in ("ciphertext", "iv", "salt"):
        value = parsed.get(name)
        if not isinstance(value, str):
            raise DecryptionError(f"Envelope field {name!r} is missing")
        try:
            fields[name] = base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as err:
            raise DecryptionError(f"Envelope field {name!r} is not base64") from err
    try:
        return Envelope(**fields)
    except ValidationError as err:
        raise DecryptionError("Envelope is malformed") from err


def seal(plaintext: Union[str, bytes], key: Optional[str] = None) -> tuple[bytes, str]:
    """Encrypt and serialize in one step.

    Returns:
        Tuple of (wire blob, key).
    """
    envelope, key = encrypt_note(plaintext, key)
    return envelope_to_bytes(envelope), key


def unseal(blob: bytes, key: str) -> bytes:
    """Parse and decrypt a wire blob."""
    return decrypt_note(envelope_from_bytes(blob), key)


# ---------------------------------------------------------------------------
# Share links
# ---------------------------------------------------------------------------

def build_share_url(base_url: str, note_id: str, key: str) -> str:
    """Build ``<base_url>/n/<id>#<key>``; the fragment never reaches the server."""
    return f"{base_url.rstrip('/')}/n/{note_id}#{key}"


def parse_share_url(url: str) -> tuple[str, str, str]:
    """Split a share link.

    Returns:
        Tuple of (base_url, note_id, key).

    Raises:
        ValueError: If the link is not of the form ``<base>/n/<id>#<key>``.
    """
    parts = urlsplit(url)
    path = parts.path.rstrip("/")
    head, sep, note_id = path.rpartition("/n/")
    if not sep or not note_id or "/" in note_id or not parts.fragment:
        raise ValueError(f"Not a note link: {url!r}")
    base_url = f"{parts.scheme}://{parts.netloc}{head}" if parts.scheme else head
    return base_url, note_id, parts.fragment
