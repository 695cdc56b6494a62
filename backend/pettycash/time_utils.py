from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

from flask import current_app, has_app_context

from .extensions import CLOCK_EXTENSION


class SystemClock:
    """Wall clock. 'now' is UTC-naive, 'today' is the UTC calendar date."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)

    def today(self) -> date:
        return self.now().date()


class FixedClock:
    """
    Clock pinned to a single instant.

    Used by tests and by what-if reporting (balance "as of" a past day).
    """

    def __init__(self, instant: datetime):
        if instant.tzinfo is not None:
            instant = instant.astimezone(timezone.utc).replace(tzinfo=None)
        self.instant = instant

    def now(self) -> datetime:
        return self.instant

    def today(self) -> date:
        return self.instant.date()

    def set(self, instant: datetime) -> None:
        self.instant = instant


_system_clock = SystemClock()


def get_clock():
    """Clock installed on the current app, falling back to the system clock."""
    if has_app_context():
        return current_app.extensions.get(CLOCK_EXTENSION, _system_clock)
    return _system_clock


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return get_clock().now()


def today() -> date:
    return get_clock().today()


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """
    Parse a YYYY-MM-DD calendar date.

    - None / "" -> None
    - A full ISO datetime is accepted and truncated to its date
    """
    if value is None:
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    s = str(value).strip()
    if not s:
        return None
    if len(s) > 10:
        return parse_iso_datetime(s).date()
    return date.fromisoformat(s)


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

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    if dt.tzinfo is None:
        return dt

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


def to_iso_date(d: Optional[date]) -> Optional[str]:
    return d.isoformat() if d is not None else None
