"""
Shared helpers.
"""
import logging
import os


LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)


def get_logger(name: str) -> logging.Logger:
    """Return a module logger configured with the application log level."""
    logger = logging.getLogger(name)
    logger.setLevel(LOG_LEVEL)
    return logger
