import threading
import time
from datetime import date, datetime, timezone

from reminder.schemas.models import Schedule, SendResult
from reminder.services.dispatcher import Dispatcher
from reminder.services.scheduler import ReminderScheduler


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def _add(svc, make_schedule, **overrides) -> Schedule:
    schedule = make_schedule(**overrides)
    svc.registry.add(schedule)
    return schedule


def test_two_ticks_in_one_minute_send_once(services, make_schedule, notifier):
    _add(services, make_schedule)

    first = services.scheduler.run_tick(_utc(2024, 1, 2, 9, 0, 5))
    second = services.scheduler.run_tick(_utc(2024, 1, 2, 9, 0, 35))

    assert [r.status for r in first.results] == ["SENT"]
    assert [r.status for r in second.results] == ["DUPLICATE"]
    assert len(notifier.calls) == 1


def test_restart_mid_minute_does_not_resend(services_factory, make_schedule, notifier):
    before = services_factory()
    _add(before, make_schedule)
    before.scheduler.run_tick(_utc(2024, 1, 2, 9, 0, 10))
    before.scheduler.stop()
    before.dedup.close()

    after = services_factory()
    assert after.registry.get("sched_test") is not None
    report = after.scheduler.run_tick(_utc(2024, 1, 2, 9, 0, 40))

    assert [r.status for r in report.results] == ["DUPLICATE"]
    assert len(notifier.calls) == 1


def test_kolkata_dose_fires_at_utc_0330(services, make_schedule, notifier):
    _add(services, make_schedule, timezone="Asia/Kolkata", time="09:00")

    assert services.scheduler.run_tick(_utc(2024, 1, 2, 9, 0)).results == []
    report = services.scheduler.run_tick(_utc(2024, 1, 2, 3, 30))
    assert [r.occurrence_key for r in report.results] == ["sched_test:2024-01-02:0"]


def test_bad_schedule_does_not_block_others(services, make_schedule, notifier):
    _add(services, make_schedule, id="sched_bad", time="25:99")
    _add(services, make_schedule, id="sched_good")

    report = services.scheduler.run_tick(_utc(2024, 1, 2, 9, 0))

    assert report.skipped == ["sched_bad"]
    assert [r.schedule_id for r in report.results] == ["sched_good"]
    assert len(notifier.calls) == 1


def test_many_schedules_each_sent_once(services, make_schedule, notifier):
    for i in range(10):
        _add(services, make_schedule, id=f"sched_{i}", email=f"p{i}@mail.com")

    report = services.scheduler.run_tick(_utc(2024, 1, 2, 9, 0))

    assert sorted(r.schedule_id for r in report.results) == sorted(f"sched_{i}" for i in range(10))
    assert sorted(c["to"] for c in notifier.calls) == sorted(f"p{i}@mail.com" for i in range(10))


def test_failed_send_retried_only_within_the_minute(services_factory, make_schedule, failing_notifier):
    svc = services_factory(notifier=failing_notifier)
    _add(svc, make_schedule)

    assert svc.scheduler.run_tick(_utc(2024, 1, 2, 9, 0, 0)).results[0].status == "FAILED"
    assert svc.scheduler.run_tick(_utc(2024, 1, 2, 9, 0, 30)).results[0].status == "FAILED"
    assert svc.scheduler.run_tick(_utc(2024, 1, 2, 9, 1, 0)).results == []
    assert len(failing_notifier.calls) == 2


def test_expired_and_inactive_schedules_are_ignored(services, make_schedule, notifier):
    _add(services, make_schedule, id="sched_expired", duration=7)
    _add(services, make_schedule, id="sched_off", duration=0)

    report = services.scheduler.run_tick(_utc(2024, 1, 8, 9, 0))
    assert report.results == []
    assert notifier.calls == []


def test_removing_schedule_clears_dedup(services, make_schedule):
    _add(services, make_schedule)
    services.scheduler.run_tick(_utc(2024, 1, 2, 9, 0))
    assert services.dedup.get("sched_test") is not None

    services.registry.remove("sched_test")
    assert services.dedup.get("sched_test") is None


def test_background_loop_sends_once_over_many_ticks(services_factory, make_schedule, notifier):
    fixed_now = _utc(2024, 1, 2, 9, 0, 1)
    svc = services_factory(clock=lambda: fixed_now, poll_interval_s=0.01, missed_interval_s=3600)
    _add(svc, make_schedule)

    svc.scheduler.start()
    deadline = time.monotonic() + 5
    while not notifier.calls and time.monotonic() < deadline:
        time.sleep(0.01)
    time.sleep(0.2)  # let several more ticks run
    svc.scheduler.stop()

    assert len(notifier.calls) == 1


def test_every_other_day_through_the_tick(services, make_schedule, notifier):
    _add(services, make_schedule, frequency="everyOtherDay", start_date=date(2024, 1, 1))
    assert services.scheduler.run_tick(_utc(2024, 1, 2, 9, 0)).results == []
    assert len(services.scheduler.run_tick(_utc(2024, 1, 3, 9, 0)).results) == 1


class SlowNotifier:
    def __init__(self, delay: float):
        self.delay = delay
        self.calls = []

    def send(self, address, subject, body_text, body_html):
        self.calls.append(address)
        time.sleep(self.delay)
        return SendResult(ok=True, details={"to": address})


class GatedNotifier:
    """Blocks every send until release() is called."""

    def __init__(self):
        self.calls = []
        self.entered = threading.Event()
        self._gate = threading.Event()

    def release(self):
        self._gate.set()

    def send(self, address, subject, body_text, body_html):
        self.calls.append(address)
        self.entered.set()
        self._gate.wait(5)
        return SendResult(ok=True, details={"to": address})


def _wait_idle(scheduler, timeout=5.0):
    deadline = time.monotonic() + timeout
    while scheduler.in_flight and time.monotonic() < deadline:
        time.sleep(0.01)
    assert not scheduler.in_flight


def test_slow_send_does_not_stretch_tick_interval(services, make_schedule):
    _add(services, make_schedule)
    slow = SlowNotifier(delay=0.6)
    starts = []

    def clock():
        starts.append(time.monotonic())
        return _utc(2024, 1, 2, 9, 0, 1)

    scheduler = ReminderScheduler(
        services.registry, Dispatcher(slow, services.dedup),
        poll_interval_s=0.3, default_tz="UTC", clock=clock,
    )
    try:
        scheduler.start()
        deadline = time.monotonic() + 5
        while len(starts) < 5 and time.monotonic() < deadline:
            time.sleep(0.02)
    finally:
        scheduler.stop()

    gaps = [b - a for a, b in zip(starts, starts[1:])]
    assert len(gaps) >= 4
    assert max(gaps) < 0.55
    assert len(slow.calls) == 1


def test_schedule_still_sending_is_skipped_by_next_tick(services_factory, make_schedule):
    gated = GatedNotifier()
    svc = services_factory(notifier=gated)
    _add(svc, make_schedule)
    now = _utc(2024, 1, 2, 9, 0, 5)

    first = svc.scheduler.run_tick(now, wait=False)
    assert first.results == []
    assert gated.entered.wait(5)

    second = svc.scheduler.run_tick(_utc(2024, 1, 2, 9, 0, 35))
    assert second.busy == ["sched_test"]
    assert second.results == []

    gated.release()
    _wait_idle(svc.scheduler)
    assert len(gated.calls) == 1
    assert svc.dedup.already_sent("sched_test", "sched_test:2024-01-02:0")


def test_removal_during_send_leaves_no_dedup_record(services_factory, make_schedule):
    gated = GatedNotifier()
    svc = services_factory(notifier=gated)
    _add(svc, make_schedule)

    svc.scheduler.run_tick(_utc(2024, 1, 2, 9, 0, 5), wait=False)
    assert gated.entered.wait(5)
    assert svc.registry.remove("sched_test")

    gated.release()
    _wait_idle(svc.scheduler)
    assert svc.dedup.get("sched_test") is None


def test_scheduler_restarts_after_stop(services_factory, make_schedule, notifier):
    fixed_now = _utc(2024, 1, 2, 9, 0, 1)
    svc = services_factory(clock=lambda: fixed_now, poll_interval_s=0.01, missed_interval_s=3600)
    svc.scheduler.start()
    svc.scheduler.stop()

    _add(svc, make_schedule)
    svc.scheduler.start()
    deadline = time.monotonic() + 5
    while not notifier.calls and time.monotonic() < deadline:
        time.sleep(0.01)
    svc.scheduler.stop()

    assert svc.scheduler.running is False
    assert len(notifier.calls) == 1
