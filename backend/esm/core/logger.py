import logging
import os

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_configured = False


def _configure():
    global _configured
    if _configured:
        return
    logging.basicConfig(
        level=os.getenv("ESM_LOG_LEVEL", "INFO").upper(),
        format=LOG_FORMAT,
    )
    _configured = True


def get_logger(name: str) -> logging.Logger:
    _configure()
    return logging.getLogger(name)
