# app/utils/logger.py
"""
Logging setup for the credential engine.
Console plus a rotating file at logs/credential_engine.log. Modules call
get_logger(__name__); the first call installs the handlers on the root logger.
"""

import logging
import os
from logging.handlers import RotatingFileHandler

from app.config import settings

LOG_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), "logs")
LOG_FILE = os.path.join(LOG_DIR, "credential_engine.log")
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# Client libraries that log every outbound request at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "urllib3")

_configured = False


def configure_logging(level: str = None):
    global _configured
    if _configured:
        return
    _configured = True

    level = (level or settings.LOG_LEVEL).upper()
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    os.makedirs(LOG_DIR, exist_ok=True)

    handlers = [
        logging.StreamHandler(),
        RotatingFileHandler(LOG_FILE, maxBytes=5 * 1024 * 1024, backupCount=10, encoding="utf-8"),
    ]
    root = logging.getLogger()
    root.setLevel(level)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a named logger. Call this at the top of every module."""
    configure_logging()
    return logging.getLogger(name)
