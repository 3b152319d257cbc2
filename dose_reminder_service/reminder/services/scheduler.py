"""
Reminder Scheduler - periodic tick that turns due doses into emails.

Each tick:
    registry snapshot -> active schedules -> due occurrences (this minute)
    -> dispatcher (dedup check, send, mark sent)

Ticks start at a fixed rate and never wait for sends. A schedule whose
previous dispatch is still running is skipped by later ticks until it
finishes, so one schedule is never dispatched twice at once while a slow
send for one schedule cannot delay the others or the next tick. One
schedule's occurrences go out in slot order.

A second thread runs the missed-dose detector on its own interval.

Run standalone:
    python -m reminder.services.scheduler            # daemon
    python -m reminder.services.scheduler --once     # one reminder tick
    python -m reminder.services.scheduler --missed-once
"""

import argparse
import logging
import signal
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, FrozenSet, List, Optional, Set, Tuple

from reminder.core.scheduler_config import (
    DEFAULT_TIMEZONE,
    DISPATCH_WORKERS,
    MISSED_CHECK_INTERVAL_S,
    POLL_INTERVAL_S,
)
from reminder.schemas.models import DispatchResult, Occurrence, Schedule, TickReport
from reminder.services.dispatcher import Dispatcher
from reminder.services.due_now import due_occurrences
from reminder.services.missed_detector import MissedDoseDetector
from reminder.services.recurrence import schedule_zone
from reminder.services.schedule_registry import ScheduleRegistry
from reminder.utils.time_resolver import InvalidTimeFormat, UnknownTimezone, truncate_to_minute

logger = logging.getLogger("reminder.scheduler")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReminderScheduler:
    def __init__(
        self,
        registry: ScheduleRegistry,
        dispatcher: Dispatcher,
        missed_detector: Optional[MissedDoseDetector] = None,
        poll_interval_s: float = POLL_INTERVAL_S,
        missed_interval_s: float = MISSED_CHECK_INTERVAL_S,
        workers: int = DISPATCH_WORKERS,
        default_tz: str = DEFAULT_TIMEZONE,
        clock: Clock = utc_now,
    ):
        self.registry = registry
        self.dispatcher = dispatcher
        self.missed_detector = missed_detector
        self.poll_interval_s = poll_interval_s
        self.missed_interval_s = missed_interval_s
        self.workers = max(1, workers)
        self.default_tz = default_tz
        self.clock = clock

        self._tick_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._in_flight: Set[str] = set()
        self._pool: Optional[ThreadPoolExecutor] = None
        self._wake = threading.Event()
        self._stop = threading.Event()
        self._running = False
        self._threads: List[threading.Thread] = []

        registry.subscribe(self._on_registry_change)

    # ---- registry hooks ----

    def _on_registry_change(self, event: str, schedule: Schedule) -> None:
        if event == "removed":
            # a dispatch still running re-checks the registry when it finishes
            self.dispatcher.dedup.forget(schedule.id)
        # re-evaluate now so a schedule added for this minute is not missed
        self.wake()

    def wake(self) -> None:
        self._wake.set()

    # ---- tick ----

    def _executor(self) -> ThreadPoolExecutor:
        # created on demand so the scheduler can be restarted after stop()
        if self._pool is None:
            self._pool = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="dispatch")
        return self._pool

    @property
    def in_flight(self) -> FrozenSet[str]:
        with self._state_lock:
            return frozenset(self._in_flight)

    def _claim(self, schedule_id: str) -> bool:
        with self._state_lock:
            if schedule_id in self._in_flight:
                return False
            self._in_flight.add(schedule_id)
            return True

    def _release(self, schedule_id: str) -> None:
        with self._state_lock:
            self._in_flight.discard(schedule_id)

    def _due_for(self, now: datetime) -> Tuple[List[Tuple[Schedule, List[Occurrence]]], List[str]]:
        due: List[Tuple[Schedule, List[Occurrence]]] = []
        skipped: List[str] = []
        for schedule in self.registry.list_active(now):
            try:
                occ = due_occurrences(schedule, now, schedule_zone(schedule, self.default_tz))
            except (InvalidTimeFormat, UnknownTimezone) as e:
                logger.error(f"Schedule {schedule.id} skipped this tick: {e}")
                skipped.append(schedule.id)
                continue
            except Exception as e:
                logger.error(f"Schedule {schedule.id} evaluation failed: {type(e).__name__}: {e}")
                skipped.append(schedule.id)
                continue
            if occ:
                due.append((schedule, occ))
        return due, skipped

    def _dispatch_in_order(self, schedule: Schedule, occurrences: List[Occurrence]) -> List[DispatchResult]:
        results = []
        try:
            for occ in occurrences:
                try:
                    results.append(self.dispatcher.dispatch(schedule, occ))
                except Exception as e:
                    logger.error(f"Dispatch of {occ.key} crashed: {type(e).__name__}: {e}")
                    results.append(DispatchResult(
                        schedule_id=schedule.id, occurrence_key=occ.key, status="FAILED", details={"error": str(e)},
                    ))
            # removed while sending: drop the record this dispatch may have written
            if self.registry.get(schedule.id) is None:
                self.dispatcher.dedup.forget(schedule.id)
        finally:
            self._release(schedule.id)
        return results

    def run_tick(self, now: Optional[datetime] = None, wait: bool = True) -> TickReport:
        """
        Evaluate one tick and hand due schedules to the dispatch pool.

        With wait=False the tick returns as soon as dispatches are submitted
        and report.results stays empty.
        """
        now = now or self.clock()
        futures: List[Future] = []
        with self._tick_lock:
            due, skipped = self._due_for(now)
            report = TickReport(tick_at=truncate_to_minute(now), evaluated=len(due) + len(skipped), skipped=skipped)

            pool = self._executor()
            for schedule, occ in due:
                if not self._claim(schedule.id):
                    logger.debug(f"Schedule {schedule.id} still dispatching, skipped this tick")
                    report.busy.append(schedule.id)
                    continue
                try:
                    futures.append(pool.submit(self._dispatch_in_order, schedule, occ))
                except RuntimeError:
                    self._release(schedule.id)
                    raise

        if not wait:
            return report

        for f in futures:
            report.results.extend(f.result())
        if report.results:
            sent = sum(1 for r in report.results if r.status == "SENT")
            logger.info(f"Tick {report.tick_at.isoformat()}: {sent}/{len(report.results)} reminders sent")
        return report

    def run_missed_check(self, now: Optional[datetime] = None) -> int:
        if self.missed_detector is None:
            return 0
        return len(self.missed_detector.run_once(now or self.clock()))

    # ---- thread loops ----

    def _reminder_loop(self):
        logger.info("Reminder loop started")
        while self._running:
            started = time.monotonic()
            self._wake.clear()
            try:
                self.run_tick(wait=False)
            except Exception as e:
                logger.error(f"Reminder tick error: {type(e).__name__}: {e}")
            # fixed rate: the interval runs from tick start
            self._wake.wait(max(0.0, self.poll_interval_s - (time.monotonic() - started)))

    def _missed_loop(self):
        logger.info("Missed-dose loop started")
        while self._running:
            try:
                self.run_missed_check()
            except Exception as e:
                logger.error(f"Missed-dose check error: {type(e).__name__}: {e}")
            self._stop.wait(self.missed_interval_s)

    # ---- start/stop ----

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._stop.clear()
        logger.info(f"Reminder scheduler starting: poll every {self.poll_interval_s}s, "
                    f"missed check every {self.missed_interval_s}s, default zone {self.default_tz}")

        self._threads = [threading.Thread(target=self._reminder_loop, name="reminder-tick", daemon=True)]
        if self.missed_detector is not None:
            self._threads.append(threading.Thread(target=self._missed_loop, name="missed-dose", daemon=True))
        for t in self._threads:
            t.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._running = False
        self._stop.set()
        self._wake.set()
        for t in self._threads:
            t.join(timeout=timeout)
        self._threads = []
        with self._tick_lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.shutdown(wait=True)
        logger.info("Reminder scheduler stopped.")

    @property
    def running(self) -> bool:
        return self._running


def main():
    from reminder.core.logging_config import configure_logging
    from reminder.services.container import build_services

    parser = argparse.ArgumentParser(description="Dose reminder scheduler")
    parser.add_argument("--once", action="store_true", help="Run one reminder tick and exit")
    parser.add_argument("--missed-once", action="store_true", help="Run one missed-dose check and exit")
    args = parser.parse_args()

    configure_logging()
    scheduler = build_services().scheduler

    if args.once or args.missed_once:
        if args.once:
            report = scheduler.run_tick()
            print(report.model_dump_json(indent=2))
        if args.missed_once:
            print(f"Marked missed: {scheduler.run_missed_check()}")
        scheduler.stop()
        return

    done = threading.Event()

    def handle_signal(signum, frame):
        logger.info(f"Received signal {signum}")
        done.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    scheduler.start()
    done.wait()
    scheduler.stop()


if __name__ == "__main__":
    main()
