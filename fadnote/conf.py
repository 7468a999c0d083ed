"""
FadNote Configuration — validated settings read from the environment.

Environment variables:
    STORAGE_TYPE = filesystem | redis | memory
    FS_STORAGE_PATH = <directory for the filesystem backend>
    REDIS_URL = <redis://host:port/db>, required when STORAGE_TYPE=redis
    REDIS_KEY_PREFIX = <prefix for every note key>
    NOTE_DEFAULT_TTL = <seconds a note lives when no TTL is supplied>
    NOTE_MAX_TTL = <largest TTL a caller may request, in seconds>
    NOTE_MAX_SIZE = <maximum encrypted payload size in bytes>
    NOTE_SWEEP_INTERVAL = <seconds between expiry sweeps>
    NOTE_BACKEND_TIMEOUT = <seconds before a backend call is abandoned>
    HOST / PORT = <HTTP bind address>

Security Note:
    The server never holds decryption keys, so nothing here is secret
    except credentials embedded in REDIS_URL. Never log the full URL.
"""
import os
import logging
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger("fadnote.config")

DEFAULT_TTL = 86400  # 24 hours
MAX_TTL = 365 * 86400
MAX_PAYLOAD_SIZE = 1024 * 1024  # 1 MiB
SWEEP_INTERVAL = 60 * 60
STORAGE_TYPES = ("filesystem", "redis", "memory")


def _env_int(name: str, default: int) -> int:
    """Read an integer environment variable.

    Raises:
        ValueError: If the variable is set but not an integer.
    """
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


class NoteConfig(BaseModel):
    """Validated note service configuration."""

    storage_type: str = Field(default="filesystem")
    fs_storage_path: str = Field(default="./data/notes")
    redis_url: Optional[str] = None
    redis_prefix: str = Field(default="fadnote:")
    default_ttl: int = Field(default=DEFAULT_TTL, ge=1)
    max_ttl: int = Field(default=MAX_TTL, ge=1)
    max_payload_size: int = Field(default=MAX_PAYLOAD_SIZE, ge=1)
    sweep_interval: int = Field(default=SWEEP_INTERVAL, ge=1)
    backend_timeout: float = Field(default=5.0, gt=0)
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000, ge=1, le=65535)

    @field_validator("storage_type")
    @classmethod
    def validate_storage_type(cls, v: str) -> str:
        """Validate storage backend is supported."""
        v = v.lower()
        if v not in STORAGE_TYPES:
            raise ValueError(
                f"Invalid STORAGE_TYPE: {v}. "
                f"Must be one of: {', '.join(STORAGE_TYPES)}"
            )
        return v

    @model_validator(mode="after")
    def validate_redis_url(self) -> "NoteConfig":
        """Ensure a redis URL is present when redis storage is selected."""
        if self.storage_type == "redis" and not self.redis_url:
            raise ValueError(
                "REDIS_URL environment variable is required when STORAGE_TYPE=redis"
            )
        return self

    @model_validator(mode="after")
    def validate_ttl_bounds(self) -> "NoteConfig":
        if self.default_ttl > self.max_ttl:
            raise ValueError(
                f"NOTE_DEFAULT_TTL ({self.default_ttl}) exceeds NOTE_MAX_TTL ({self.max_ttl})"
            )
        return self

    @classmethod
    def from_env(cls) -> "NoteConfig":
        """Create NoteConfig by loading values from environment.

        Returns:
            Populated NoteConfig instance.
        """
        config = cls(
            storage_type=os.environ.get("STORAGE_TYPE", "filesystem"),
            fs_storage_path=os.environ.get("FS_STORAGE_PATH", "./data/notes"),
            redis_url=os.environ.get("REDIS_URL") or None,
            redis_prefix=os.environ.get("REDIS_KEY_PREFIX", "fadnote:"),
            default_ttl=_env_int("NOTE_DEFAULT_TTL", DEFAULT_TTL),
            max_ttl=_env_int("NOTE_MAX_TTL", MAX_TTL),
            max_payload_size=_env_int("NOTE_MAX_SIZE", MAX_PAYLOAD_SIZE),
            sweep_interval=_env_int("NOTE_SWEEP_INTERVAL", SWEEP_INTERVAL),
            backend_timeout=_env_float("NOTE_BACKEND_TIMEOUT", 5.0),
            host=os.environ.get("HOST", "0.0.0.0"),
            port=_env_int("PORT", 3000),
        )
        logger.debug(
            "Loaded configuration: storage=%s default_ttl=%d max_size=%d",
            config.storage_type, config.default_ttl, config.max_payload_size,
        )
        return config
