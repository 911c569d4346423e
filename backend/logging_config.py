"""Centralized logging configuration."""

import logging

from config import settings

# Third-party loggers that are chatty at INFO.
NOISY_LOGGERS = (
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "httpx",
    "httpcore",
    "urllib3",
    "plaid",
)


def setup_logging() -> None:
    """Configure logging for the service.

    Sets the root logger level from settings.LOG_LEVEL and pins the
    HTTP, ORM and Plaid SDK loggers to WARNING.
    """
    logging.basicConfig(
        format="%(asctime)s %(levelname)-8s %(name)s  %(message)s",
        datefmt="%H:%M:%S",
        level=getattr(logging, settings.LOG_LEVEL),
        force=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
