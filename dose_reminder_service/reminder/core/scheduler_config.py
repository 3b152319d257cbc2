import logging
import os
from pathlib import Path

from reminder.core.env import load_env
load_env()

logger = logging.getLogger("reminder.config")

SERVICE_DIR = Path(__file__).resolve().parents[2]  # dose_reminder_service/

DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "Asia/Kolkata")

# A due minute is one minute wide, so a tick must land inside every minute.
MAX_POLL_INTERVAL_S = 60
POLL_INTERVAL_S = int(os.getenv("POLL_INTERVAL_S", "30"))
if POLL_INTERVAL_S > MAX_POLL_INTERVAL_S:
    logger.warning(f"POLL_INTERVAL_S={POLL_INTERVAL_S} would skip doses, clamping to {MAX_POLL_INTERVAL_S}")
    POLL_INTERVAL_S = MAX_POLL_INTERVAL_S

DISPATCH_WORKERS = int(os.getenv("DISPATCH_WORKERS", "4"))

MISSED_AFTER_MINUTES = int(os.getenv("MISSED_AFTER_MINUTES", "30"))
MISSED_CHECK_INTERVAL_S = int(os.getenv("MISSED_CHECK_INTERVAL_S", "300"))

SCHEDULES_FILE = Path(os.getenv("SCHEDULES_FILE", str(SERVICE_DIR / "schedules.json")))
DOSE_LOGS_FILE = Path(os.getenv("DOSE_LOGS_FILE", str(SERVICE_DIR / "doseLogs.json")))
DEDUP_DB_PATH = Path(os.getenv("DEDUP_DB_PATH", str(SERVICE_DIR / "reminder" / "db" / "dedup.db")))

EMAIL_ENABLED = os.getenv("EMAIL_ENABLED", "true").lower() == "true"
SMTP_HOST = os.getenv("SMTP_HOST", "")
SMTP_PORT = int(os.getenv("SMTP_PORT", "465"))
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASS = os.getenv("SMTP_PASS", "")
SMTP_FROM = os.getenv("SMTP_FROM") or SMTP_USER
SMTP_SECURE = os.getenv("SMTP_SECURE", "true").lower() == "true"
SMTP_TIMEOUT_S = int(os.getenv("SMTP_TIMEOUT_S", "20"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE", "")
