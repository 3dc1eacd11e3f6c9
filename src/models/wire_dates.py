# src/models/wire_dates.py

"""Decode and encode the marketplace's tagged date wrapper.

Timestamps arrive either as a plain ISO-8601 string or wrapped as
``{"__type": "Date", "value": "2025-04-25T02:01:48.208Z"}``.  Both
decode to the same timezone-aware UTC ``datetime``.
"""

from datetime import datetime, timezone
from typing import Any

DATE_TYPE_KEY = "__type"
DATE_TYPE_MARKER = "Date"


def _parse_iso(text: str) -> datetime | None:
    """Parse an ISO-8601 string, accepting a trailing ``Z``."""
    cleaned = text.strip()
    if not cleaned:
        return None
    if cleaned.endswith(("Z", "z")):
        cleaned = cleaned[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(cleaned)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def decode_wire_date(value: Any) -> datetime | None:
    """Decode a tagged wrapper or a plain ISO string.

    The tagged shape is tried first.  Anything that is neither shape,
    or whose text does not parse, yields ``None``.
    """
    if isinstance(value, dict):
        if value.get(DATE_TYPE_KEY) != DATE_TYPE_MARKER:
            return None
        inner = value.get("value")
        return _parse_iso(inner) if isinstance(inner, str) else None
    if isinstance(value, str):
        return _parse_iso(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return None


def encode_wire_date(value: datetime) -> dict[str, str]:
    """Encode a datetime in the tagged form the marketplace emits."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    utc = value.astimezone(timezone.utc)
    text = utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return {DATE_TYPE_KEY: DATE_TYPE_MARKER, "value": text}
