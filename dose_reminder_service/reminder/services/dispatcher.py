# reminder/services/dispatcher.py
import logging

from reminder.db.db_config import PersistenceFailure
from reminder.schemas.models import DispatchResult, Occurrence, Schedule
from reminder.services.dedup_store import DedupStore
from reminder.services.notifier import Notifier, reminder_message
from reminder.utils.time_resolver import truncate_to_minute

logger = logging.getLogger("reminder.dispatcher")


class Dispatcher:
    def __init__(self, notifier: Notifier, dedup: DedupStore):
        self.notifier = notifier
        self.dedup = dedup

    def dispatch(self, schedule: Schedule, occurrence: Occurrence) -> DispatchResult:
        """
        One send attempt per undelivered occurrence.

        - key already marked -> DUPLICATE, no send
        - notifier fails -> FAILED, key left unmarked so the next tick in the
          same minute retries; once the minute passes the reminder is dropped
        - send ok but mark fails -> PERSIST_FAILED; a retry in the same minute
          may send again
        """
        key = occurrence.key

        def result(status: str, **details) -> DispatchResult:
            return DispatchResult(schedule_id=schedule.id, occurrence_key=key, status=status, details=details)

        try:
            if self.dedup.already_sent(schedule.id, key):
                logger.debug(f"{key} already sent, skipping")
                return result("DUPLICATE")
        except PersistenceFailure as e:
            # treated as not sent
            logger.error(f"{key}: dedup lookup failed, sending anyway: {e}")

        subject, text, html = reminder_message(schedule)
        sent = self.notifier.send(schedule.email, subject, text, html)
        if not sent.ok:
            logger.error(f"⏰ Reminder for {schedule.medicine_name} ({key}) failed: {sent.details.get('error')}")
            return result("FAILED", **sent.details)

        try:
            self.dedup.mark_sent(schedule.id, key, truncate_to_minute(occurrence.instant))
        except PersistenceFailure as e:
            logger.error(f"{key}: sent but could not be recorded: {e}")
            return result("PERSIST_FAILED", error=str(e))

        logger.info(f"⏰ Reminder email sent for {schedule.medicine_name} ({key})")
        return result("SENT", **sent.details)
