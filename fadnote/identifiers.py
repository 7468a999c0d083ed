"""
Note identifiers.

One policy is applied everywhere: ids use the alphabet ``[A-Za-z0-9_-]``
and are 1..128 characters long. Generated ids are 32 lowercase hex
characters drawn from :mod:`secrets`.
"""
import re
import secrets

from .exceptions import InvalidId

ID_BYTES = 16
MAX_ID_LENGTH = 128

_VALID_ID = re.compile(r"^[A-Za-z0-9_-]{1,%d}$" % MAX_ID_LENGTH)
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def generate_id() -> str:
    """Return a new random note id."""
    return secrets.token_hex(ID_BYTES)


def validate_id(candidate) -> bool:
    """Return True if ``candidate`` is an acceptable note id.

    Anything outside the alphabet is rejected, which covers ``..``,
    ``/`` and ``\\``.
    """
    if not isinstance(candidate, str):
        return False
    # fullmatch: "$" would also accept a trailing newline.
    return _VALID_ID.fullmatch(candidate) is not None


def ensure_valid_id(candidate) -> str:
    """Return ``candidate`` unchanged or raise :class:`InvalidId`."""
    if not validate_id(candidate):
        raise InvalidId("Invalid ID format")
    return candidate


def sanitize_id(candidate: str) -> str:
    """Strip every character outside the id alphabet.

    Used before building filesystem paths, independently of
    :func:`validate_id`.

    Raises:
        InvalidId: If nothing is left after stripping.
    """
    cleaned = _UNSAFE_CHARS.sub("", candidate)[:MAX_ID_LENGTH]
    if not cleaned:
        raise InvalidId("Invalid ID format")
    return cleaned
