from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .validation import ValidationError


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


def parse_calendar_date(value: Optional[str], field: str = "date") -> Optional[date]:
    """Parse a strict YYYY-MM-DD string. None / "" -> None."""
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None
    try:
        if len(s) != 10:
            raise ValueError(s)
        return date.fromisoformat(s)
    except ValueError:
        raise ValidationError(f"{field} must be a date in YYYY-MM-DD format")


def resolve_timezone(name: str | None) -> ZoneInfo:
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(f"unknown time zone: {name}")


def local_today(tz: ZoneInfo) -> date:
    return datetime.now(tz).date()


def day_bounds_utc(first_day: date, last_day: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """
    Half-open UTC-naive window [first_day 00:00, last_day + 1 00:00) in zone tz.

    Computed from local midnights so DST days keep their real length.
    """
    start_local = datetime.combine(first_day, time.min, tzinfo=tz)
    end_local = datetime.combine(last_day + timedelta(days=1), time.min, tzinfo=tz)
    return (
        start_local.astimezone(timezone.utc).replace(tzinfo=None),
        end_local.astimezone(timezone.utc).replace(tzinfo=None),
    )


def local_date_of(dt: datetime, tz: ZoneInfo) -> date:
    """Calendar day of a stored UTC-naive timestamp as seen in zone tz."""
    return dt.replace(tzinfo=timezone.utc).astimezone(tz).date()
