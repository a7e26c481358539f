"""Logging configuration for the wordforge service and generator."""

import logging
import sys
from datetime import datetime
from pathlib import Path

import config

LOGGER_NAME = "wordforge"

# Server loggers that share the wordforge handlers under `serve`
UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")

FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def setup_logger(
    command: str = "run",
    level: int = logging.INFO,
    log_dir: Path = config.LOGS_DIR,
    capture_uvicorn: bool = False,
) -> logging.Logger:
    """
    Configure the wordforge logger for one CLI command.

    Everything goes to `<log_dir>/<command>_<timestamp>.log`; the console shows
    bare messages at `level`.

    Args:
        command: CLI command name, used as the log file prefix
        level: Logging level
        log_dir: Directory that receives the log file
        capture_uvicorn: Route uvicorn's own loggers into the same handlers

    Returns:
        The configured `wordforge` logger
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / f"{command}_{datetime.now():%Y%m%d_%H%M%S}.log"

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter("%(message)s"))

    names = (LOGGER_NAME,) + (UVICORN_LOGGERS if capture_uvicorn else ())
    for name in names:
        logger = logging.getLogger(name)
        logger.setLevel(level)
        logger.handlers.clear()
        logger.addHandler(file_handler)
        logger.addHandler(console_handler)
        # uvicorn.error/access would otherwise print twice through "uvicorn"
        logger.propagate = name == LOGGER_NAME

    logger = logging.getLogger(LOGGER_NAME)
    logger.info(f"Log file: {log_path}")
    return logger


def get_logger(name: str = LOGGER_NAME) -> logging.Logger:
    """Return a wordforge logger; child names like `wordforge.api` share its handlers."""
    return logging.getLogger(name)
