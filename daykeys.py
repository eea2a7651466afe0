"""
Day-key normalization.

A day-key is the timezone-aware UTC midnight of a calendar day. Weekdays are
numbered 0=Sunday..6=Saturday and derived from the epoch day number:

    weekday = (floor(epoch_seconds / 86400) + 4) % 7

1970-01-01 was a Thursday (4). For any UTC midnight this is the same value
MongoDB returns for ``{"$subtract": [{"$dayOfWeek": "$date"}, 1]}``, which is
what the summary pipeline uses.
"""
from datetime import datetime, timezone

from errors import ValidationError

SECONDS_PER_DAY = 86400
EPOCH_WEEKDAY = 4


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_day(value) -> datetime:
    """Truncate a datetime (naive means UTC) or a date to its UTC midnight."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        else:
            value = value.astimezone(timezone.utc)
        return value.replace(hour=0, minute=0, second=0, microsecond=0)
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)


def weekday_of(day_key: datetime) -> int:
    epoch_days = int(normalize_day(day_key).timestamp()) // SECONDS_PER_DAY
    return (epoch_days + EPOCH_WEEKDAY) % 7


def parse_timestamp(raw: str) -> datetime:
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationError("date is required")
    text = raw.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
        normalize_day(parsed)
    except (ValueError, OverflowError):
        raise ValidationError(f"Invalid date: {raw!r}")
    return parsed
