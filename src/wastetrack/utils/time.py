"""Time utilities for UTC timestamp formatting and parsing."""

from datetime import date, datetime, timedelta, timezone


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def utc_now_z() -> str:
    """
    Get current UTC time as ISO 8601 string with Z suffix.

    Returns:
        ISO 8601 UTC timestamp ending with 'Z' (e.g., '2025-12-23T00:27:07.804867Z')
    """
    return to_utc_z(utc_now())


def to_utc_z(dt: datetime) -> str:
    """
    Convert datetime to ISO 8601 UTC string with Z suffix.

    Args:
        dt: Datetime object (must be timezone-aware)

    Returns:
        ISO 8601 UTC timestamp ending with 'Z'

    Raises:
        ValueError: If datetime is naive (not timezone-aware)
    """
    if dt.tzinfo is None:
        raise ValueError(
            f"Naive datetime not allowed. Got {dt}. "
            "Use datetime.now(timezone.utc) or dt.replace(tzinfo=timezone.utc)"
        )
    dt_utc = dt.astimezone(timezone.utc)
    return dt_utc.isoformat().replace("+00:00", "Z")


def to_storage(value: datetime | date | str | None) -> str | None:
    """
    Normalize a datetime/date into the string form stored in the database.

    Datetimes are stored as ISO 8601 UTC with Z suffix, dates as YYYY-MM-DD.
    Naive datetimes are treated as UTC. Strings pass through unchanged.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        # Fixed precision keeps stored values lexicographically sortable
        return value.astimezone(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")
    return value.isoformat()


def parse_timestamp(value: datetime | date | str | None) -> datetime | None:
    """Parse a stored timestamp (ISO 8601, 'Z' or offset, or bare date) into an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def storage_now() -> str:
    """Current UTC time in stored form."""
    return to_storage(utc_now())


def storage_cutoff(*, days: float = 0, hours: float = 0) -> str:
    """Stored-form timestamp for ``now - (days, hours)``; comparable lexicographically."""
    return to_storage(utc_now() - timedelta(days=days, hours=hours))
