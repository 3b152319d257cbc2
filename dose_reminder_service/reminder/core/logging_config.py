import logging
from pathlib import Path
from typing import List

from reminder.core.scheduler_config import LOG_FILE, LOG_LEVEL

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

def configure_logging() -> None:
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if LOG_FILE:
        log_path = Path(LOG_FILE)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, mode="a"))

    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT, handlers=handlers)
