import logging
import sys

from cartledger.config import settings


def get_logger(name: str) -> logging.Logger:
    """
    Return a named logger writing to stdout with a "[NAME] message" prefix.
    Handlers are attached once, so repeated calls are safe.
    """
    log = logging.getLogger(name)
    log.setLevel(settings.LOG_LEVEL.upper())
    if not log.handlers:
        h = logging.StreamHandler(sys.stdout)
        h.setFormatter(logging.Formatter(f"[{name.upper()}] %(levelname)s %(message)s"))
        log.addHandler(h)
    return log
