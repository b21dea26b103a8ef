"""Runtime settings for the FastAPI server.

This module centralizes environment parsing and derived runtime flags.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_MAX_BODY_BYTES: int = 8 * 1024 * 1024
"""Upper bound for a reassembled chunked request body.

Client payloads are small MessagePack documents; anything near this size is
either a broken client or abuse, and the whole body is held in memory while
it is reassembled.
"""

DEFAULT_CHUNK_IDLE_TIMEOUT: float = 5.0
"""Seconds to wait for the next body chunk before assuming the client
forgot the terminating zero-length chunk."""


def env_int(name: str, *, default: int) -> int:
    """Parse an environment variable as an integer, with a fallback default."""
    value = os.environ.get(name, "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def env_float(name: str, *, default: float) -> float:
    """Parse an environment variable as a float, with a fallback default."""
    value = os.environ.get(name, "").strip()
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def env_bool(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name, "").strip().lower()
    if not value:
        return default
    return value in {"1", "true", "yes", "on"}


@dataclass(frozen=True, slots=True)
class AppSettings:
    """Derived runtime settings for the API server process."""

    db_host: str = "localhost"
    db_name: str = "dragalia"
    db_probe_interval: float = 1.0
    chunk_idle_timeout: float = DEFAULT_CHUNK_IDLE_TIMEOUT
    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES
    dechunk_raw_framing: bool = False
    openapi_url: str | None = None

    @classmethod
    def from_env(cls) -> AppSettings:
        """Build settings from environment variables."""
        db_host = os.environ.get("DRAGALIA_DB_HOST", "").strip() or "localhost"
        db_name = os.environ.get("DRAGALIA_DB_NAME", "").strip() or "dragalia"

        # A non-positive interval would turn the readiness gate into a
        # busy loop against the database.
        db_probe_interval = env_float("DRAGALIA_DB_PROBE_INTERVAL", default=1.0)
        if db_probe_interval <= 0:
            db_probe_interval = 1.0

        chunk_idle_timeout = env_float(
            "DRAGALIA_CHUNK_IDLE_TIMEOUT",
            default=DEFAULT_CHUNK_IDLE_TIMEOUT,
        )
        max_body_bytes = env_int(
            "DRAGALIA_MAX_BODY_BYTES",
            default=DEFAULT_MAX_BODY_BYTES,
        )
        if max_body_bytes <= 0:
            max_body_bytes = DEFAULT_MAX_BODY_BYTES

        # OpenAPI docs are disabled in production by default.
        # Set OPENAPI_URL=/openapi.json in development to re-enable them.
        openapi_url_raw = os.environ.get("OPENAPI_URL", "").strip()
        openapi_url: str | None = openapi_url_raw or None

        return cls(
            db_host=db_host,
            db_name=db_name,
            db_probe_interval=db_probe_interval,
            chunk_idle_timeout=chunk_idle_timeout,
            max_body_bytes=max_body_bytes,
            dechunk_raw_framing=env_bool("DRAGALIA_DECHUNK_RAW_FRAMING"),
            openapi_url=openapi_url,
        )
