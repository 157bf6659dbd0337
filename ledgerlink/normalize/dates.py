"""Date helpers shared by conversion, dedup and transfer matching.

All instants are stored as UTC ISO-8601 strings with millisecond
precision and a Z suffix. Zone-less input is read as UTC.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

_SHORT_DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2,4})$")


def parse_instant(value: str | None) -> datetime | None:
    """Parse an ISO-ish timestamp ("2024-03-01 10:15:30", "...Z", "2024-03-01").

    The first space is treated as the date/time separator. Returns an aware
    UTC datetime, or None when the value is blank or unparseable.
    """
    if not value or not value.strip():
        return None
    s = value.strip().replace(" ", "T", 1)
    if s.endswith("Z") or s.endswith("z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_day_month_year(value: str | None) -> datetime | None:
    """Parse DD/MM/YYYY or DD/MM/YY at UTC midnight (2-digit years are 20xx).

    Returns None when the pattern does not match or names an impossible day.
    """
    if not value:
        return None
    m = _SHORT_DATE_RE.match(value.strip())
    if not m:
        return None
    day, month, year = (int(g) for g in m.groups())
    if len(m.group(3)) == 2:
        year += 2000
    try:
        return datetime(year, month, day, tzinfo=timezone.utc)
    except ValueError:
        return None


def to_iso(dt: datetime) -> str:
    """Format an aware datetime as 2024-03-01T10:15:30.000Z."""
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


def day_key(value: str | None) -> str:
    """Calendar day (UTC) of an instant; falls back to the trimmed raw value."""
    dt = parse_instant(value)
    if dt is None:
        return (value or "").strip()
    return dt.date().isoformat()


def within_days(a: str, b: str, days: float) -> bool:
    """True if two instants are at most `days` apart. Unparseable -> False."""
    da = parse_instant(a)
    db = parse_instant(b)
    if da is None or db is None:
        return False
    return abs(da - db) <= timedelta(days=days)
