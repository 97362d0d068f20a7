# clinicbook/utils/my_logging.py
"""Logging configuration shared by the API process and the Celery worker"""
import logging
import sys
from typing import Optional

from clinicbook.config.settings import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that drown out booking and notification events
QUIET_LOGGERS = (
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "kombu",
    "celery.worker.strategy",
    "twilio.http_client",
    "uvicorn.access",
)


def setup_logging(verbose: bool = True, level: Optional[str] = None):
    """
    Configure root logging once per process.

    `level` overrides LOG_LEVEL; non-verbose mode logs warnings and up and
    raises the third-party loggers to ERROR.
    """
    settings = get_settings()

    if verbose:
        name = (level or settings.LOG_LEVEL).upper()
        resolved = logging.getLevelName(name)
        if not isinstance(resolved, int):
            resolved = logging.INFO
    else:
        resolved = logging.WARNING

    logging.basicConfig(level=resolved, format=LOG_FORMAT, handlers=[logging.StreamHandler(sys.stdout)])
    logging.getLogger("clinicbook").setLevel(resolved)

    quiet_level = logging.WARNING if verbose else logging.ERROR
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)
