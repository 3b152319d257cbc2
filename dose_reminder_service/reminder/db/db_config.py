# reminder/db/db_config.py

import sqlite3
from pathlib import Path
from typing import Optional

from reminder.core.scheduler_config import DEDUP_DB_PATH


class PersistenceFailure(RuntimeError):
    pass


def get_sqlite_connection(db_path: Optional[Path] = None) -> sqlite3.Connection:
    """
    Create and configure SQLite connection with recommended PRAGMA settings.
    """
    path = Path(db_path or DEDUP_DB_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        conn = sqlite3.connect(str(path), check_same_thread=False)

        # Durability & concurrency settings
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        conn.execute("PRAGMA busy_timeout=5000;")
    except sqlite3.Error as e:
        raise PersistenceFailure(f"Could not open {path}: {e}") from e

    return conn
