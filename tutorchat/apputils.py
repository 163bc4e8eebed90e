"""Utilities shared by the server entry points."""

import logging
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(
    log_file: str | Path | None = None,
    *,
    console_level: int = logging.INFO,
    file_level: int = logging.ERROR,
) -> logging.Logger:
    """
    Configure the 'tutorchat' logger of the server process: messages
    of console_level and above go to the console, messages of
    file_level and above to the log file, if given.

    Returns:
        the 'tutorchat' logger
    """
    logger = logging.getLogger("tutorchat")
    logger.setLevel(min(console_level, file_level))
    formatter = logging.Formatter(LOG_FORMAT)

    # idempotent: replaces the handlers of a previous call
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setLevel(console_level)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if log_file is not None:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(file_level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
