# reminder/services/dedup_store.py
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from reminder.db.db_config import PersistenceFailure, get_sqlite_connection

_SCHEMA = """
CREATE TABLE IF NOT EXISTS dedup (
    schedule_id    TEXT PRIMARY KEY,
    occurrence_key TEXT NOT NULL,
    due_minute     TEXT,
    sent_at        TEXT NOT NULL
)
"""


class DedupStore:
    """
    Last notified occurrence key per schedule.

    Each write is committed before returning, so a restarted process sees
    every key that was marked before it died.
    """

    def __init__(self, db_path: Optional[Path] = None):
        self._lock = threading.Lock()
        self._conn = get_sqlite_connection(db_path)
        self._run(lambda c: c.execute(_SCHEMA))

    def _run(self, fn):
        with self._lock:
            try:
                with self._conn:  # commit on success, rollback on error
                    return fn(self._conn)
            except sqlite3.Error as e:
                raise PersistenceFailure(f"dedup store: {e}") from e

    def get(self, schedule_id: str) -> Optional[str]:
        row = self._run(
            lambda c: c.execute(
                "SELECT occurrence_key FROM dedup WHERE schedule_id = ?", (schedule_id,)
            ).fetchone()
        )
        return row[0] if row else None

    def already_sent(self, schedule_id: str, occurrence_key: str) -> bool:
        return self.get(schedule_id) == occurrence_key

    def mark_sent(self, schedule_id: str, occurrence_key: str, due_minute: Optional[datetime] = None) -> None:
        sent_at = datetime.now(timezone.utc).isoformat()
        self._run(
            lambda c: c.execute(
                "INSERT INTO dedup (schedule_id, occurrence_key, due_minute, sent_at) VALUES (?, ?, ?, ?) "
                "ON CONFLICT(schedule_id) DO UPDATE SET "
                "occurrence_key = excluded.occurrence_key, due_minute = excluded.due_minute, sent_at = excluded.sent_at",
                (schedule_id, occurrence_key, due_minute.isoformat() if due_minute else None, sent_at),
            )
        )

    def forget(self, schedule_id: str) -> None:
        self._run(lambda c: c.execute("DELETE FROM dedup WHERE schedule_id = ?", (schedule_id,)))

    def close(self) -> None:
        with self._lock:
            self._conn.close()
