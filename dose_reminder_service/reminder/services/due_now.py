# reminder/services/due_now.py
from datetime import datetime, timedelta, timezone
from typing import List, Optional
from zoneinfo import ZoneInfo

from reminder.schemas.models import Occurrence, Schedule
from reminder.services.recurrence import MAX_SLOT_SPAN_DAYS, candidate_instants, schedule_zone
from reminder.utils.time_resolver import local_today, utc_minute


def recent_occurrences(schedule: Schedule, now: datetime, tz: Optional[ZoneInfo] = None) -> List[Occurrence]:
    """
    Candidates from today's base day and the previous ones whose later slots
    can still land on today (twiceDaily 22:00 -> 10:00 next day).
    Ordered by instant.
    """
    tz = tz or schedule_zone(schedule)
    today = local_today(now, tz)

    occ: List[Occurrence] = []
    for back in range(MAX_SLOT_SPAN_DAYS, -1, -1):
        occ.extend(candidate_instants(schedule, today - timedelta(days=back), tz))
    occ.sort(key=lambda o: o.instant.astimezone(timezone.utc))
    return occ


def due_occurrences(schedule: Schedule, now: datetime, tz: Optional[ZoneInfo] = None) -> List[Occurrence]:
    # exact minute match; a missed minute is not caught up
    due_minute = utc_minute(now)
    return [o for o in recent_occurrences(schedule, now, tz) if utc_minute(o.instant) == due_minute]
