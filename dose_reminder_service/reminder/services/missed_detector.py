# reminder/services/missed_detector.py
import logging
from datetime import datetime, timedelta
from typing import List

from reminder.core.scheduler_config import DEFAULT_TIMEZONE, MISSED_AFTER_MINUTES
from reminder.db.db_config import PersistenceFailure
from reminder.schemas.models import DoseLog, DoseLogCreate
from reminder.services.dose_log_store import DoseLogStore
from reminder.services.due_now import recent_occurrences
from reminder.services.notifier import Notifier, missed_message
from reminder.services.schedule_registry import ScheduleRegistry
from reminder.services.recurrence import schedule_zone
from reminder.utils.time_resolver import InvalidTimeFormat, UnknownTimezone

logger = logging.getLogger("reminder.missed")

# occurrences older than this are no longer flagged
MISSED_LOOKBACK = timedelta(hours=24)


class MissedDoseDetector:
    """
    Marks an occurrence as missed once it is MISSED_AFTER_MINUTES old and no
    taken/missed log covers it, then sends a missed-dose email.
    """

    def __init__(
        self,
        registry: ScheduleRegistry,
        logs: DoseLogStore,
        notifier: Notifier,
        grace: timedelta = timedelta(minutes=MISSED_AFTER_MINUTES),
        default_tz: str = DEFAULT_TIMEZONE,
    ):
        self.registry = registry
        self.logs = logs
        self.notifier = notifier
        self.grace = grace
        self.default_tz = default_tz

    def run_once(self, now: datetime) -> List[DoseLog]:
        marked: List[DoseLog] = []
        for schedule in self.registry.snapshot():
            try:
                tz = schedule_zone(schedule, self.default_tz)
                occurrences = recent_occurrences(schedule, now, tz)
            except (InvalidTimeFormat, UnknownTimezone) as e:
                logger.error(f"Schedule {schedule.id} skipped for missed check: {e}")
                continue

            for occ in occurrences:
                age = now - occ.instant
                if not (self.grace < age < MISSED_LOOKBACK):
                    continue
                if self.logs.covers(schedule, occ, tz):
                    continue

                try:
                    log = self.logs.append(DoseLogCreate(
                        medicine_id=schedule.id,
                        medicine_name=schedule.medicine_name,
                        email=schedule.email,
                        status="missed",
                        taken_at=now,
                        timezone=str(tz),
                        occurrence_key=occ.key,
                    ))
                except PersistenceFailure as e:
                    # no log, no email: next run retries both
                    logger.error(f"Could not record missed dose {occ.key}: {e}")
                    continue

                marked.append(log)
                logger.info(f"❌ Auto-marked missed: {schedule.medicine_name} ({occ.key})")

                subject, text, html = missed_message(schedule)
                sent = self.notifier.send(schedule.email, subject, text, html)
                if not sent.ok:
                    logger.error(f"❌ Auto missed email failed for {occ.key}: {sent.details.get('error')}")
        return marked
