"""
Logging for the bot runtime.

One ``meeting_bot`` logger tree: colored lines on the console and, unless
disabled, a size-rotated file under ``logs/``. Modules log through
``get_logger("<module>")``.
"""

import logging
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, TextIO

from .settings import settings

ROOT_LOGGER = "meeting_bot"
LOG_DIR = Path("logs")
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
CONSOLE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(funcName)s:%(lineno)d | %(message)s"
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5


class ColoredFormatter(logging.Formatter):
    """Colors the level name. The record itself is left untouched."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[41m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname)
        if color is None:
            return super().format(record)

        original = record.levelname
        record.levelname = f"{color}{original}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


def _console_handler(level: int, stream: TextIO) -> logging.Handler:
    handler = logging.StreamHandler(stream)
    handler.setLevel(level)
    # Escape codes only make sense on a terminal
    if getattr(stream, "isatty", lambda: False)():
        handler.setFormatter(ColoredFormatter(fmt=CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(fmt=CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    return handler


def _file_handler(level: int, log_file: Optional[str]) -> logging.Handler:
    if log_file is None:
        LOG_DIR.mkdir(exist_ok=True)
        bot_part = f"bot{settings.bot.id}_" if settings.bot.id is not None else ""
        log_file = str(LOG_DIR / f"meeting_bot_{bot_part}{datetime.now().strftime('%Y%m%d')}.log")
    handler = RotatingFileHandler(
        log_file,
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUPS,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=DATE_FORMAT))
    return handler


def setup_logging(
    log_level: Optional[str] = None,
    log_file: Optional[str] = None,
    enable_file_logging: Optional[bool] = None,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    (Re)configure the ``meeting_bot`` logger.

    Safe to call again, e.g. after ``--log-level`` is parsed: previous
    handlers are closed and replaced.

    Args:
        log_level: Level name, defaults to ``settings.log_level``
        log_file: Explicit log file path
        enable_file_logging: Defaults to ``settings.log_to_file``
        stream: Console stream, defaults to stdout

    Returns:
        The configured root logger of the package
    """
    level = getattr(logging, (log_level or settings.log_level).upper())
    if enable_file_logging is None:
        enable_file_logging = settings.log_to_file

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.addHandler(_console_handler(level, stream or sys.stdout))
    if enable_file_logging:
        logger.addHandler(_file_handler(level, log_file))
    return logger


def get_logger(name: str) -> logging.Logger:
    """Child logger ``meeting_bot.<name>``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


logger = setup_logging()
