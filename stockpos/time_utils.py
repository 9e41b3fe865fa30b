from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DD" is midnight UTC of that day
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    if dt.tzinfo is None:
        return dt

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_date_range(
    from_date: Optional[str], to_date: Optional[str]
) -> tuple[Optional[datetime], Optional[datetime]]:
    """
    Turn ?fromDate=YYYY-MM-DD&toDate=YYYY-MM-DD into an inclusive datetime range.

    toDate covers the whole day (through 23:59:59.999999).
    Raises ValueError on malformed input.
    """
    start = parse_iso_datetime(from_date) if from_date else None
    end = None
    if to_date:
        day = date.fromisoformat(to_date.strip()[:10])
        end = datetime.combine(day, time.max)
    return start, end


def start_of_day(now: Optional[datetime] = None) -> datetime:
    now = now or utcnow()
    return datetime.combine(now.date(), time.min)


def start_of_month(now: Optional[datetime] = None) -> datetime:
    now = now or utcnow()
    return datetime(now.year, now.month, 1)


def end_of_day(now: Optional[datetime] = None) -> datetime:
    return start_of_day(now) + timedelta(days=1)


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
