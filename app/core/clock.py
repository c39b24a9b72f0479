from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

# Injected wherever "now" matters so tests can pin it.
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


def isoformat_z(value: datetime) -> str:
    """Render as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` (UTC, millisecond precision)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    value = value.astimezone(UTC)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(raw: str | datetime) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC.

    Raises ValueError on unparseable input, TypeError on non-strings.
    """
    if isinstance(raw, datetime):
        value = raw
    elif isinstance(raw, str):
        value = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    else:
        raise TypeError(f"expected an ISO-8601 string, got {type(raw).__name__}")
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


def years_before(value: datetime, years: int) -> datetime:
    try:
        return value.replace(year=value.year - years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return value.replace(year=value.year - years, day=28)
