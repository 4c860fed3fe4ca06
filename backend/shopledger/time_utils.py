from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

# Clock skew tolerated between mobile clients and the server
FUTURE_TOLERANCE = timedelta(minutes=2)


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DD" is read as midnight UTC
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def normalize_business_time(value, *, field: str = "date") -> datetime:
    """
    Normalize a caller supplied business timestamp (sale_date, purchase_date).

    Accepts None (-> now), datetime (aware or naive) or an ISO-8601 string.
    Raises ValueError for unparseable input or a timestamp in the future.
    """
    if value is None:
        return utcnow()

    if isinstance(value, datetime):
        dt = value
        if dt.tzinfo is not None:
            dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    elif isinstance(value, str):
        try:
            dt = parse_iso_datetime(value)
        except ValueError:
            raise ValueError(f"{field} must be an ISO-8601 datetime")
        if dt is None:
            return utcnow()
    else:
        raise ValueError(f"{field} must be an ISO-8601 datetime")

    if dt > utcnow() + FUTURE_TOLERANCE:
        raise ValueError(f"{field} cannot be in the future")
    return dt


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")
