# reminder/services/container.py
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from reminder.core.scheduler_config import DEFAULT_TIMEZONE
from reminder.services.dedup_store import DedupStore
from reminder.services.dispatcher import Dispatcher
from reminder.services.dose_log_store import DoseLogStore
from reminder.services.missed_detector import MissedDoseDetector
from reminder.services.notifier import Notifier, build_notifier
from reminder.services.schedule_registry import ScheduleRegistry
from reminder.services.scheduler import ReminderScheduler


@dataclass
class ReminderServices:
    registry: ScheduleRegistry
    dedup: DedupStore
    dose_logs: DoseLogStore
    notifier: Notifier
    scheduler: ReminderScheduler


def build_services(
    schedules_file: Optional[Path] = None,
    dose_logs_file: Optional[Path] = None,
    dedup_db: Optional[Path] = None,
    notifier: Optional[Notifier] = None,
    default_tz: str = DEFAULT_TIMEZONE,
    **scheduler_kwargs,
) -> ReminderServices:
    notifier = notifier or build_notifier()
    registry = ScheduleRegistry(schedules_file, default_tz=default_tz)
    dedup = DedupStore(dedup_db)
    dose_logs = DoseLogStore(dose_logs_file)

    scheduler = ReminderScheduler(
        registry,
        Dispatcher(notifier, dedup),
        MissedDoseDetector(registry, dose_logs, notifier, default_tz=default_tz),
        default_tz=default_tz,
        **scheduler_kwargs,
    )
    return ReminderServices(registry, dedup, dose_logs, notifier, scheduler)
