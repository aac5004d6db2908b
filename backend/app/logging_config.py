import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from app.config import settings

LOG_DIR = settings.LOG_DIR
LOG_FILE = os.path.join(LOG_DIR, "audio-service.log")

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(module)s - %(funcName)s - %(lineno)d - %(message)s"

# Library loggers that are chatty at DEBUG; pinned regardless of LOG_LEVEL.
QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "celery": logging.INFO,
    "multipart": logging.WARNING,
}


def _has_stdout_handler(logger: logging.Logger) -> bool:
    return any(
        isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stdout
        for h in logger.handlers
    )


def setup_logging(level: Optional[str] = None) -> None:
    """
    Route the API, the in-process worker and Celery processes to stdout and
    a rotating file under ``LOG_DIR``.

    Safe to call more than once; handlers are only attached when missing.
    """
    os.makedirs(LOG_DIR, exist_ok=True)

    formatter = logging.Formatter(LOG_FORMAT)
    level_name = (level or settings.LOG_LEVEL).upper()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))

    if not _has_stdout_handler(root_logger):
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    if not any(isinstance(h, logging.FileHandler) for h in root_logger.handlers):
        # 5MB per file, 2 backups
        file_handler = RotatingFileHandler(LOG_FILE, maxBytes=1024 * 1024 * 5, backupCount=2)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    for name, logger_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(logger_level)

    logging.info("Logging configured (level=%s, file=%s)", level_name, LOG_FILE)
