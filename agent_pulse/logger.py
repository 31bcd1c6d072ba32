import logging
from typing import Optional

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Return a console logger for `name`.
    Handlers are attached once, so repeated calls are cheap and never duplicate output.
    """
    logger = logging.getLogger(name)
    if level:
        logger.setLevel(level.upper())

    if logger.handlers:
        return logger

    if not level:
        logger.setLevel(logging.INFO)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
