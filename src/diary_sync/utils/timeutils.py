"""Time helpers shared across the sync stack.

All timestamps are stored as naive UTC datetimes. The server speaks
ISO8601 with a trailing ``Z``, so conversion happens at the edges.
"""

from __future__ import annotations

from datetime import UTC, datetime

EPOCH = datetime(1970, 1, 1)


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime."""
    return datetime.now(UTC).replace(tzinfo=None)


def to_iso(value: datetime) -> str:
    """Format a naive-UTC (or aware) datetime as ISO8601 with a ``Z`` suffix."""
    if value.tzinfo is not None:
        value = value.astimezone(UTC).replace(tzinfo=None)
    return value.replace(microsecond=0).isoformat() + "Z"


def parse_iso(value: object) -> datetime | None:
    """Parse an ISO8601 string into a naive UTC datetime.

    Accepts ``Z`` and explicit offsets. Returns None for empty or
    unparseable input.
    """
    if not isinstance(value, str) or not value:
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC).replace(tzinfo=None)
    return parsed
