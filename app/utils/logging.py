import logging
import os

LOGGER_NAME = "uzbektourist"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"


def setup_logging(level: str | None = None) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    if logger.handlers:
        return logger

    name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    logger.setLevel(getattr(logging, name, logging.INFO))

    h = logging.StreamHandler()
    h.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(h)
    logger.propagate = False
    return logger
