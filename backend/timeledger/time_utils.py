from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
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


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    if value is None or not value.strip():
        return None
    return date.fromisoformat(value.strip())


def parse_hhmm(value: str) -> time:
    """Parse "HH:MM" wall-clock time; raises ValueError on bad input."""
    hours, _, minutes = value.strip().partition(":")
    return time(int(hours), int(minutes or 0))


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


def get_zone(name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {name}") from exc


def to_local(dt: datetime, tz_name: Optional[str]) -> datetime:
    """UTC-naive instant -> naive wall-clock time in tz_name."""
    return dt.replace(tzinfo=timezone.utc).astimezone(get_zone(tz_name)).replace(tzinfo=None)


def local_to_utc(dt: datetime, tz_name: Optional[str]) -> datetime:
    """Naive wall-clock time in tz_name -> UTC-naive instant."""
    return dt.replace(tzinfo=get_zone(tz_name)).astimezone(timezone.utc).replace(tzinfo=None)


def local_range_to_utc(start: date, end: date, tz_name: Optional[str]) -> tuple[datetime, datetime]:
    """
    Inclusive local date range -> half-open UTC interval [start_utc, end_utc).
    """
    start_utc = local_to_utc(datetime.combine(start, time.min), tz_name)
    end_utc = local_to_utc(datetime.combine(end + timedelta(days=1), time.min), tz_name)
    return start_utc, end_utc


def minutes_between(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() // 60)
