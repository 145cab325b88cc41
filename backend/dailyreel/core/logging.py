"""Logging setup

Modules log through named loggers: upload, compression, capture, folders,
drive, sync, security and api_access.
"""
import logging

from dailyreel.core.config import settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Third-party loggers that would otherwise log every Drive request
QUIET_LOGGERS = ("urllib3", "urllib3.connectionpool", "httpx", "httpcore", "google.auth")


def setup_logging():
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S', force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
