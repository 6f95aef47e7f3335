"""
Date conversion at the service boundary.

Dates enter and leave as ISO-8601 strings and are held internally as
timezone-aware UTC datetimes.
"""

from datetime import datetime, timezone
from typing import Optional, Union

from ..exceptions import ValidationError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_internal_time(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse an ISO-8601 string into an aware UTC datetime.

    Returns None for None or empty input. Naive values are taken as UTC.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError(f"Invalid date: {value!r}")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Render a datetime as an ISO-8601 string (UTC, millisecond precision)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")
