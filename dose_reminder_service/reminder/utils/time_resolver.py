# reminder/utils/time_resolver.py
from __future__ import annotations

import logging
import re
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger("reminder.time")

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


class InvalidTimeFormat(ValueError):
    pass


class UnknownTimezone(ValueError):
    pass


def parse_hhmm(hhmm: str) -> Tuple[int, int]:
    m = _TIME_RE.match(str(hhmm or "").strip())
    if not m:
        raise InvalidTimeFormat(f"Expected HH:MM, got {hhmm!r}")
    h, mi = int(m.group(1)), int(m.group(2))
    if not (0 <= h <= 23 and 0 <= mi <= 59):
        raise InvalidTimeFormat(f"Time out of range: {hhmm!r}")
    return h, mi


def load_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise UnknownTimezone(f"Unknown timezone {name!r}") from e


def resolve_zone(name: Optional[str], default: str) -> ZoneInfo:
    """
    Zone for a schedule. Absent or unknown names fall back to the default zone;
    only an unknown default raises.
    """
    if name:
        try:
            return load_zone(name)
        except UnknownTimezone:
            logger.warning(f"Unknown timezone {name!r}, falling back to {default}")
    return load_zone(default)


def resolve_daily_instant(day: date, hhmm: str, tz: ZoneInfo) -> datetime:
    """
    Wall-clock HH:MM on `day` in `tz`, using the offset in effect on that day.

    Ambiguous times (clocks going back) resolve to the first occurrence.
    Times inside a spring-forward gap move forward by the gap length, e.g.
    02:30 on a night that skips 02:00-03:00 becomes 03:30.
    """
    h, mi = parse_hhmm(hhmm)
    wall = datetime(day.year, day.month, day.day, h, mi, tzinfo=tz, fold=0)
    # UTC round trip normalizes nonexistent wall times
    return wall.astimezone(timezone.utc).astimezone(tz)


def add_elapsed(dt: datetime, delta: timedelta) -> datetime:
    # aware + timedelta is wall-clock arithmetic in Python; go through UTC
    # so "+12h" means twelve real hours across DST changes
    return (dt.astimezone(timezone.utc) + delta).astimezone(dt.tzinfo)


def truncate_to_minute(dt: datetime) -> datetime:
    return dt.replace(second=0, microsecond=0)


def utc_minute(dt: datetime) -> datetime:
    # compare in UTC: same-zone comparisons ignore `fold`
    return truncate_to_minute(dt.astimezone(timezone.utc))


def local_today(now: datetime, tz: ZoneInfo) -> date:
    return now.astimezone(tz).date()
