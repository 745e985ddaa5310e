"""Normalisation of FileJump timestamp strings into aware datetimes."""

from __future__ import annotations

import re
from datetime import UTC, datetime

# Documented zero value for entries whose timestamps cannot be decoded
ZERO_TIME = datetime(1, 1, 1, tzinfo=UTC)

# Tried in this order; the first format that parses wins.
TIMESTAMP_FORMATS: tuple[str, ...] = (
    "%Y-%m-%dT%H:%M:%S.%fZ",
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%d %H:%M:%S",
)

# strptime's %f accepts at most six digits
_EXCESS_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def parse_timestamp(value: object) -> datetime | None:
    """Parse one timestamp field.

    Args:
        value: Raw JSON value of a ``created_at`` / ``updated_at`` field.

    Returns:
        UTC datetime, or None if the value is absent or matches no known format.
    """
    if not isinstance(value, str):
        return None
    text = _EXCESS_FRACTION_RE.sub(r"\1", value.strip())
    if not text:
        return None
    for fmt in TIMESTAMP_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=UTC)
        try:
            return parsed.astimezone(UTC)
        except OverflowError:
            return None
    return None


def decode_mod_time(updated_at: object, created_at: object) -> datetime:
    """Return the best modification time for an entry.

    ``updated_at`` is preferred, ``created_at`` is the fallback, and
    ZERO_TIME is returned when neither parses. Never raises.
    """
    for value in (updated_at, created_at):
        parsed = parse_timestamp(value)
        if parsed is not None:
            return parsed
    return ZERO_TIME


def is_zero_time(value: datetime) -> bool:
    """Return True if value is the documented zero timestamp."""
    return value == ZERO_TIME
