# reminder/utils/json_file.py
import json
import logging
import os
from pathlib import Path
from typing import Any

from reminder.db.db_config import PersistenceFailure

logger = logging.getLogger("reminder.json_file")


def read_json_list(path: Path) -> list:
    """Missing or empty file -> []. Unreadable content is logged and treated as empty."""
    if not path.exists():
        logger.warning(f"⚠️ No {path.name} found, starting empty.")
        return []
    try:
        data = json.loads(path.read_text(encoding="utf-8") or "[]")
    except (json.JSONDecodeError, OSError) as e:
        logger.error(f"❌ Failed to load {path.name}: {e}")
        return []
    if not isinstance(data, list):
        logger.error(f"❌ {path.name} does not hold a list, ignoring it")
        return []
    return data


def write_json_atomic(path: Path, payload: Any) -> None:
    """Write via temp file + rename so readers never see a half-written file."""
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except OSError as e:
        raise PersistenceFailure(f"Failed to save {path.name}: {e}") from e
