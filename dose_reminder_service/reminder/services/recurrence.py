# reminder/services/recurrence.py
import logging
from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo

from reminder.core.scheduler_config import DEFAULT_TIMEZONE
from reminder.schemas.models import DEFAULT_FREQUENCY, KNOWN_FREQUENCIES, Occurrence, Schedule
from reminder.utils.time_resolver import add_elapsed, resolve_daily_instant, resolve_zone

logger = logging.getLogger("reminder.recurrence")

# elapsed offsets from the base time, one per slot
_SLOT_OFFSETS = {
    "onceDaily": (timedelta(0),),
    "twiceDaily": (timedelta(0), timedelta(hours=12)),
    "every8h": (timedelta(0), timedelta(hours=8), timedelta(hours=16)),
    "everyOtherDay": (timedelta(0),),
    "weekly": (timedelta(0),),
}

# frequency -> day period counted from start_date
_DAY_PERIODS = {
    "everyOtherDay": 2,
    "weekly": 7,
}

# longest slot offset; due-now must also expand this many previous base days
MAX_SLOT_SPAN_DAYS = 1


def schedule_zone(schedule: Schedule, default: str = DEFAULT_TIMEZONE) -> ZoneInfo:
    return resolve_zone(schedule.timezone, default)


def effective_frequency(schedule: Schedule) -> str:
    freq = (schedule.frequency or "").strip()
    if freq in KNOWN_FREQUENCIES:
        return freq
    # unknown patterns still remind once a day instead of going silent
    logger.warning(f"Schedule {schedule.id}: unknown frequency {schedule.frequency!r}, using {DEFAULT_FREQUENCY}")
    return DEFAULT_FREQUENCY


def active_window(schedule: Schedule) -> Optional[Tuple[date, Optional[date]]]:
    """
    Inclusive (first_day, last_day) in the schedule's zone.
    None means never active; last_day None means no end.
    """
    if schedule.duration is None:
        return schedule.start_date, None
    if schedule.duration <= 0:
        return None
    return schedule.start_date, schedule.start_date + timedelta(days=schedule.duration - 1)


def day_in_window(schedule: Schedule, day: date) -> bool:
    window = active_window(schedule)
    if window is None:
        return False
    first, last = window
    return day >= first and (last is None or day <= last)


def is_active(schedule: Schedule, at: datetime, tz: Optional[ZoneInfo] = None) -> bool:
    tz = tz or schedule_zone(schedule)
    return day_in_window(schedule, at.astimezone(tz).date())


def runs_on(schedule: Schedule, day: date, frequency: Optional[str] = None) -> bool:
    freq = frequency or effective_frequency(schedule)
    period = _DAY_PERIODS.get(freq)
    if period is None:
        return True
    # whole calendar days, not elapsed 24h blocks
    days = (day - schedule.start_date).days
    return days >= 0 and days % period == 0


def candidate_instants(schedule: Schedule, today: date, tz: Optional[ZoneInfo] = None) -> List[Occurrence]:
    """
    Occurrences whose base day is `today` (a date in the schedule's zone).

    Slots pushed past midnight by their offset keep `today` as base day, so
    their instant lands on the next calendar day. Raises InvalidTimeFormat for
    a bad `time` and UnknownTimezone when no zone can be resolved.
    """
    tz = tz or schedule_zone(schedule)
    if not day_in_window(schedule, today):
        return []

    freq = effective_frequency(schedule)
    if not runs_on(schedule, today, freq):
        return []

    base = resolve_daily_instant(today, schedule.time, tz)
    out: List[Occurrence] = []
    for slot, offset in enumerate(_SLOT_OFFSETS[freq]):
        instant = add_elapsed(base, offset)
        if not day_in_window(schedule, instant.date()):
            continue
        out.append(Occurrence(schedule_id=schedule.id, base_date=today, slot=slot, instant=instant))
    return out
