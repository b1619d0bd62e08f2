from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo


_YMD_PREFIX = re.compile(r"^(\d{4}-\d{2}-\d{2})")


def utcnow() -> datetime:
    """Client-side 'now' in UTC (aware)."""
    return datetime.now(timezone.utc)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string into an aware UTC datetime.

    - None / "" / garbage -> None
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC
    - RFC 1123 strings ("Mon, 01 Jan 2024 10:00:00 GMT") are accepted too
    """
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        try:
            dt = datetime.strptime(s, "%a, %d %b %Y %H:%M:%S GMT")
        except ValueError:
            return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


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


def ymd_in_zone(moment: datetime, tz_name: str) -> str:
    """Calendar day (YYYY-MM-DD) of an instant as seen in the business timezone."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(ZoneInfo(tz_name)).date().isoformat()


def calendar_day(value) -> Optional[str]:
    """
    YYYY-MM-DD from an explicit date field ("2024-01-01", "2024-01-01 00:00").

    Returns None when the value does not start with a valid calendar date.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()

    match = _YMD_PREFIX.match(str(value).strip())
    if not match:
        return None
    try:
        return date.fromisoformat(match.group(1)).isoformat()
    except ValueError:
        return None


def business_day_of(timestamp, tz_name: str) -> Optional[str]:
    """
    Business-timezone calendar day of a timestamp field (created_at and friends).

    Naive timestamps are interpreted as UTC, same as parse_iso_datetime.
    Returns None when the value cannot be placed on a timeline.
    """
    if timestamp is None:
        return None
    if isinstance(timestamp, datetime):
        return ymd_in_zone(timestamp, tz_name)
    if isinstance(timestamp, date):
        return timestamp.isoformat()

    parsed = parse_iso_datetime(str(timestamp))
    if parsed is None:
        return None
    return ymd_in_zone(parsed, tz_name)


def today_in_zone(tz_name: str, now: Optional[datetime] = None) -> str:
    return ymd_in_zone(now or utcnow(), tz_name)


def days_ago_in_zone(n: int, tz_name: str, now: Optional[datetime] = None) -> str:
    return ymd_in_zone((now or utcnow()) - timedelta(days=n), tz_name)


def yesterday_in_zone(tz_name: str, now: Optional[datetime] = None) -> str:
    return days_ago_in_zone(1, tz_name, now)


def last_7_days_in_zone(tz_name: str, now: Optional[datetime] = None) -> tuple[str, str]:
    """(start, end) of the trailing seven-day window, today included."""
    return days_ago_in_zone(6, tz_name, now), today_in_zone(tz_name, now)
