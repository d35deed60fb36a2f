from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


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


def parse_plain_date(value: str | date | None) -> Optional[date]:
    """
    Parse a plain 'YYYY-MM-DD' business date.

    - None / "" -> None
    - date -> returned unchanged (datetime is truncated to its date part)
    - anything with a time or offset component is rejected; business dates
      are never derived through a UTC conversion.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = value.strip()
    if not s:
        return None
    if len(s) != 10:
        raise ValueError(f"invalid date {value!r}, expected YYYY-MM-DD")
    return date.fromisoformat(s)


def format_plain_date(value: Optional[date]) -> Optional[str]:
    if value is None:
        return None
    return value.strftime("%Y-%m-%d")
