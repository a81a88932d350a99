from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    - Unparseable input -> None
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None

    # Normalize to UTC-naive
    if dt.tzinfo is None:
        # interpret naive as UTC
        return dt.replace(tzinfo=None)

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


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


def business_date(moment: datetime, tz_name: str) -> date:
    """Calendar date of a UTC-naive moment in the business timezone."""
    aware = moment.replace(tzinfo=timezone.utc).astimezone(ZoneInfo(tz_name))
    return aware.date()


def start_of_business_day(moment: datetime, tz_name: str) -> datetime:
    """
    Local midnight of the business day containing `moment`, as UTC-naive.

    Used for the fallback cutoff window when no cycle has been opened yet.
    """
    local_day = business_date(moment, tz_name)
    local_midnight = datetime.combine(local_day, time.min, tzinfo=ZoneInfo(tz_name))
    return local_midnight.astimezone(timezone.utc).replace(tzinfo=None)
