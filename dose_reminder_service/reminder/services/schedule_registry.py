# reminder/services/schedule_registry.py
import logging
import threading
import uuid
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from reminder.core.scheduler_config import DEFAULT_TIMEZONE, SCHEDULES_FILE
from reminder.schemas.models import Schedule, ScheduleCreate
from reminder.services.recurrence import is_active, schedule_zone
from reminder.utils.json_file import read_json_list, write_json_atomic
from reminder.utils.time_resolver import UnknownTimezone, load_zone, local_today, parse_hhmm

logger = logging.getLogger("reminder.registry")

# (event, schedule) with event in {"added", "removed"}
Listener = Callable[[str, Schedule], None]


def _schedule_id() -> str:
    return "sched_" + uuid.uuid4().hex[:10]


def new_schedule(req: ScheduleCreate, default_tz: str = DEFAULT_TIMEZONE) -> Schedule:
    """
    Validated Schedule from an add request.
    Raises InvalidTimeFormat / UnknownTimezone for the caller to report.
    """
    parse_hhmm(req.time)
    tz_name = req.timezone or default_tz
    tz = load_zone(tz_name)
    now = datetime.now(timezone.utc)

    return Schedule(
        id=_schedule_id(),
        medicine_name=req.medicine_name.strip(),
        dosage=req.dosage,
        time=req.time.strip(),
        frequency=req.frequency,
        start_date=req.start_date or local_today(now, tz),
        duration=req.duration,
        timezone=tz_name,
        email=str(req.email),
        created_at=now,
    )


def _upgrade_legacy(raw: Dict[str, Any], default_tz: str) -> Dict[str, Any]:
    # entries written before ids/start dates/zones were stored
    out = dict(raw)
    if out.get("name") and not out.get("medicineName"):
        out["medicineName"] = out["name"]
    out.setdefault("id", _schedule_id())
    out.setdefault("timezone", default_tz)
    if not out.get("startDate"):
        created = out.get("createdAt")
        out["startDate"] = str(created)[:10] if created else date.today().isoformat()
    return out


class ScheduleRegistry:
    """
    Owns the schedule list.

    Reads return an immutable snapshot (tuple of frozen models). Writes are
    serialized, persisted, and only then published, so a reader never sees
    a half-applied add/remove and never sees state that is not on disk.
    """

    def __init__(self, path: Optional[Path] = None, default_tz: str = DEFAULT_TIMEZONE):
        self.path = Path(path or SCHEDULES_FILE)
        self.default_tz = default_tz
        self._write_lock = threading.Lock()
        self._listeners: List[Listener] = []
        self._snapshot: Tuple[Schedule, ...] = ()
        self._unreadable: List[Any] = []
        self._load()

    def _load(self) -> None:
        loaded: List[Schedule] = []
        upgraded = False
        for raw in read_json_list(self.path):
            if not isinstance(raw, dict):
                self._unreadable.append(raw)
                continue
            fixed = _upgrade_legacy(raw, self.default_tz)
            upgraded = upgraded or fixed != raw
            try:
                loaded.append(Schedule.model_validate(fixed))
            except ValidationError as e:
                logger.error(f"❌ Skipping invalid schedule {raw.get('id')}: {e.error_count()} errors")
                self._unreadable.append(raw)

        self._snapshot = tuple(loaded)
        logger.info(f"📅 Loaded {len(loaded)} schedules.")
        if upgraded:
            self._persist(self._snapshot)

    def _persist(self, schedules: Tuple[Schedule, ...]) -> None:
        # unreadable entries are written back as-is so nothing is lost
        payload = [s.model_dump(mode="json", by_alias=True) for s in schedules] + self._unreadable
        write_json_atomic(self.path, payload)

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _notify(self, event: str, schedule: Schedule) -> None:
        for listener in self._listeners:
            try:
                listener(event, schedule)
            except Exception as e:
                logger.error(f"Registry listener failed on {event} {schedule.id}: {e}")

    # ---- reads ----

    def snapshot(self) -> Tuple[Schedule, ...]:
        return self._snapshot

    def list_all(self) -> List[Schedule]:
        return list(self._snapshot)

    def get(self, schedule_id: str) -> Optional[Schedule]:
        return next((s for s in self._snapshot if s.id == schedule_id), None)

    def list_active(self, now: datetime) -> List[Schedule]:
        out: List[Schedule] = []
        for s in self._snapshot:
            try:
                if is_active(s, now, schedule_zone(s, self.default_tz)):
                    out.append(s)
            except UnknownTimezone as e:
                logger.error(f"Schedule {s.id} skipped: {e}")
        return out

    # ---- writes ----

    def add(self, schedule: Schedule) -> str:
        with self._write_lock:
            if any(s.id == schedule.id for s in self._snapshot):
                raise ValueError(f"Duplicate schedule id {schedule.id}")
            updated = self._snapshot + (schedule,)
            self._persist(updated)
            self._snapshot = updated
        logger.info(f"📅 New schedule added for {schedule.medicine_name}")
        self._notify("added", schedule)
        return schedule.id

    def remove(self, schedule_id: str) -> bool:
        with self._write_lock:
            target = next((s for s in self._snapshot if s.id == schedule_id), None)
            if target is None:
                return False
            updated = tuple(s for s in self._snapshot if s.id != schedule_id)
            self._persist(updated)
            self._snapshot = updated
        logger.info(f"🗑️ Schedule removed: {target.medicine_name} ({schedule_id})")
        self._notify("removed", target)
        return True
