import logging
import threading
import uuid
from datetime import date, timezone
from pathlib import Path
from typing import List, Optional
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from reminder.core.scheduler_config import DOSE_LOGS_FILE
from reminder.schemas.models import DoseLog, DoseLogCreate, Occurrence, Schedule
from reminder.utils.json_file import read_json_list, write_json_atomic

logger = logging.getLogger("reminder.dose_logs")


def _log_id() -> str:
    return "log_" + uuid.uuid4().hex[:8]


class DoseLogStore:
    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path or DOSE_LOGS_FILE)
        self._lock = threading.Lock()
        self._logs: List[DoseLog] = []
        for raw in read_json_list(self.path):
            try:
                self._logs.append(DoseLog.model_validate({"id": _log_id(), **raw}))
            except (ValidationError, TypeError):
                logger.warning(f"⚠️ Skipping unreadable dose log entry: {raw!r}")

    def append(self, entry: DoseLogCreate) -> DoseLog:
        log = DoseLog(id=_log_id(), **entry.model_dump())
        with self._lock:
            updated = self._logs + [log]
            write_json_atomic(self.path, [x.model_dump(mode="json", by_alias=True) for x in updated])
            self._logs = updated
        logger.info(f"📦 Logged dose: {log.medicine_name or log.medicine_id} ({log.status})")
        return log

    def list_logs(self) -> List[DoseLog]:
        return list(self._logs)

    def covers(self, schedule: Schedule, occurrence: Occurrence, tz: ZoneInfo) -> bool:
        """
        True if a taken/missed log already accounts for this occurrence.

        Logs carrying an occurrence key must match it exactly. Logs without
        one (posted by clients) count for every occurrence of the same
        medicine on the same local day.
        """
        day: date = occurrence.instant.astimezone(tz).date()
        for log in self._logs:
            if log.occurrence_key:
                if log.occurrence_key == occurrence.key:
                    return True
                continue
            if (log.medicine_id not in (schedule.id, schedule.medicine_name)
                    and log.medicine_name != schedule.medicine_name):
                continue
            taken_at = log.taken_at if log.taken_at.tzinfo else log.taken_at.replace(tzinfo=timezone.utc)
            if taken_at.astimezone(tz).date() == day:
                return True
        return False
