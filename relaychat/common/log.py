"""Logging setup shared by the server and the client."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

LOGGER_NAME = "relaychat"
FORMAT = "[%(asctime)s] %(levelname)-8s %(message)s"


def configure_logging(verbose: bool = False, log_file: Optional[str] = None) -> logging.Logger:
    '''
    Attach handlers to the "relaychat" logger. Called once from the entry point;
    modules only ever do logging.getLogger(__name__).
    Input:
        - verbose: DEBUG instead of INFO
        - log_file: optional path of a rotating log file (1 MiB, 3 backups)
    Output: the configured logger
    '''
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    fmt = logging.Formatter(FORMAT, "%H:%M:%S")

    # stderr keeps stdout free for the chat window
    sh = logging.StreamHandler(sys.stderr)
    sh.setFormatter(fmt)
    logger.addHandler(sh)

    if log_file:
        fh = RotatingFileHandler(log_file, maxBytes=1_048_576, backupCount=3, encoding="utf-8")
        fh.setFormatter(fmt)
        logger.addHandler(fh)

    logger.propagate = False
    return logger
