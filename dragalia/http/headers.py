"""Fixed response headers stamped on every outbound response."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from email.utils import format_datetime
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from collections.abc import MutableMapping

EXPIRES_AFTER: Final[timedelta] = timedelta(minutes=30)

STATIC_RESPONSE_HEADERS: Final[dict[str, str]] = {
    "Access-Control-Allow-Origin": "*",
    "Cache-Control": "max-age=0, no-cache, no-store",
    "Pragma": "no-cache",
    "Connection": "keep-alive",
}


def http_date(moment: datetime) -> str:
    """Format ``moment`` as an RFC 1123 date, e.g. ``Mon, 19 Oct 2026 12:00:00 GMT``."""
    return format_datetime(moment.astimezone(UTC), usegmt=True)


def expires_value(now: datetime | None = None) -> str:
    if now is None:
        now = datetime.now(UTC)
    return http_date(now + EXPIRES_AFTER)


def stamp_response_headers(
    headers: MutableMapping[str, str],
    *,
    now: datetime | None = None,
) -> None:
    """Set the cache/CORS/keep-alive headers, replacing any existing values."""
    for name, value in STATIC_RESPONSE_HEADERS.items():
        headers[name] = value
    headers["Expires"] = expires_value(now)
