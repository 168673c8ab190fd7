"""Environment-driven settings for the V-SIDS service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from services.diagnosis.history_compaction import HISTORY_BYTE_CEILING
from services.diagnosis.upstream_client import DEFAULT_TIMEOUT_SECONDS, DEFAULT_UPSTREAM_URL
from utils.media_validation import MAX_IMAGE_BYTES

DEFAULT_STORAGE_QUOTA_BYTES = 5 * 1024 * 1024


def _env_str(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _env_number(name: str, default: float, cast=int):
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        value = cast(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name}={raw!r} is not a valid number") from exc
    if value <= 0:
        raise RuntimeError(f"{name} must be positive, got {raw!r}")
    return value


@dataclass
class Settings:
    """Runtime configuration.

    Attributes:
        database_dir: Directory for the SQLite file; None defers to DATABASE_DIR handling
            in `AsyncDatabaseInitializer` (which raises when it is missing).
        upstream_url: Remote analysis service the diagnose endpoint forwards to.
        diagnose_endpoint_url: Absolute URL of the diagnose endpoint used by the session
            client. None means the in-process endpoint of this application.
        request_timeout: Seconds allowed for one analysis request.
        history_max_bytes: Ceiling for the persisted conversation history.
        storage_quota_bytes: Largest value a single storage slot accepts.
        max_image_bytes: Largest accepted upload, measured before encoding.
        log_level: Root logging level name.
    """

    database_dir: Optional[str] = None
    upstream_url: str = DEFAULT_UPSTREAM_URL
    diagnose_endpoint_url: Optional[str] = None
    request_timeout: float = DEFAULT_TIMEOUT_SECONDS
    history_max_bytes: int = HISTORY_BYTE_CEILING
    storage_quota_bytes: int = DEFAULT_STORAGE_QUOTA_BYTES
    max_image_bytes: int = MAX_IMAGE_BYTES
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_dir=_env_str("DATABASE_DIR"),
            upstream_url=_env_str("UPSTREAM_ANALYSIS_URL") or DEFAULT_UPSTREAM_URL,
            diagnose_endpoint_url=_env_str("DIAGNOSE_ENDPOINT_URL"),
            request_timeout=_env_number("REQUEST_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS, float),
            history_max_bytes=_env_number("HISTORY_MAX_BYTES", HISTORY_BYTE_CEILING),
            storage_quota_bytes=_env_number("STORAGE_QUOTA_BYTES", DEFAULT_STORAGE_QUOTA_BYTES),
            max_image_bytes=_env_number("MAX_IMAGE_BYTES", MAX_IMAGE_BYTES),
            log_level=(_env_str("LOG_LEVEL") or "INFO").upper(),
        )
