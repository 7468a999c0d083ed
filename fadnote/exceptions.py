"""
Error taxonomy for the note storage engine.

``NotFound`` deliberately covers "never existed", "already read" and
"expired" so callers cannot learn whether a note ever existed.
"""


class FadnoteError(Exception):
    """Base class for every error raised by fadnote."""

    code: str = "error"
    status: int = 500

    def __init__(self, message: str = "", *args) -> None:
        super().__init__(message or self.__class__.__doc__, *args)

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else ""


class InvalidId(FadnoteError, ValueError):
    """Invalid note ID format"""

    code = "invalid_id"
    status = 400


class AlreadyExists(FadnoteError):
    """Note ID already exists"""

    code = "already_exists"
    status = 409


class EmptyPayload(FadnoteError, ValueError):
    """Empty note"""

    code = "empty_payload"
    status = 400


class TooLarge(FadnoteError, ValueError):
    """Note too large"""

    code = "too_large"
    status = 413


class InvalidTtl(FadnoteError, ValueError):
    """Invalid note TTL"""

    code = "invalid_ttl"
    status = 400


class NotFound(FadnoteError, KeyError):
    """Note not found or already viewed"""

    code = "not_found"
    status = 404

    def __str__(self) -> str:
        # KeyError quotes its argument otherwise.
        return self.message


class DecryptionError(FadnoteError):
    """Unable to decrypt note: wrong key or tampered envelope"""

    code = "decryption_error"
    status = 400


class Unavailable(FadnoteError):
    """Storage backend unavailable"""

    code = "unavailable"
    status = 503
