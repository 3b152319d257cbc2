import threading
from datetime import date
from typing import Any, Dict, List

import pytest

from reminder.schemas.models import Schedule, SendResult
from reminder.services.container import build_services
from reminder.services.dedup_store import DedupStore


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def send(self, address, subject, body_text, body_html):
        with self._lock:
            self.calls.append({"to": address, "subject": subject, "text": body_text, "html": body_html})
        if self.fail:
            return SendResult(ok=False, details={"error": "smtp down"})
        return SendResult(ok=True, details={"to": address})


@pytest.fixture
def make_schedule():
    def _make(**overrides) -> Schedule:
        fields = {
            "id": "sched_test",
            "medicine_name": "Metformin",
            "dosage": "500mg",
            "time": "09:00",
            "frequency": "onceDaily",
            "start_date": date(2024, 1, 1),
            "duration": None,
            "timezone": "UTC",
            "email": "patient@mail.com",
        }
        fields.update(overrides)
        return Schedule(**fields)
    return _make


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def failing_notifier():
    return RecordingNotifier(fail=True)


@pytest.fixture
def dedup(tmp_path):
    store = DedupStore(tmp_path / "dedup.db")
    yield store
    store.close()


@pytest.fixture
def paths(tmp_path):
    return {
        "schedules_file": tmp_path / "schedules.json",
        "dose_logs_file": tmp_path / "doseLogs.json",
        "dedup_db": tmp_path / "dedup.db",
    }


@pytest.fixture
def services_factory(paths, notifier):
    built = []

    def _build(**overrides):
        kwargs = {**paths, "notifier": notifier, "default_tz": "UTC", "poll_interval_s": 0.05}
        kwargs.update(overrides)
        svc = build_services(**kwargs)
        built.append(svc)
        return svc

    yield _build
    for svc in built:
        svc.scheduler.stop(timeout=1.0)
        svc.dedup.close()


@pytest.fixture
def services(services_factory):
    return services_factory()
