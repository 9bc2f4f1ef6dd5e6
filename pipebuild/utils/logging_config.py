"""
Logging Setup
=============
Console logging on stderr (stdout carries the staged artifact path) plus an
optional daily file under ``log_dir``. Call ``setup_logging`` once from the
entry point; library modules only ever use ``logging.getLogger(__name__)``.
"""
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Chatty third-party loggers pulled in by the docker SDK
_NOISY_LOGGERS = ("docker", "urllib3")


class ColoredFormatter(logging.Formatter):
    """Console formatter that colours each record by level."""

    COLORS = {
        logging.DEBUG: "\x1b[36m",
        logging.INFO: "\x1b[32m",
        logging.WARNING: "\x1b[33m",
        logging.ERROR: "\x1b[31m",
        logging.CRITICAL: "\x1b[31;1m",
    }
    RESET = "\x1b[0m"

    def __init__(self):
        super().__init__(LOG_FORMAT, datefmt=DATE_FORMAT)

    def format(self, record):
        text = super().format(record)
        color = self.COLORS.get(record.levelno)
        # Custom levels stay uncoloured
        if not color:
            return text
        return f"{color}{text}{self.RESET}"


def build_log_file(log_dir: Union[str, Path], day: Optional[datetime] = None) -> Path:
    """Daily log file path, e.g. ``logs/build_20260101.log``."""
    day = day or datetime.now()
    return Path(log_dir) / f"build_{day.strftime('%Y%m%d')}.log"


def setup_logging(level=logging.INFO, log_dir: Union[str, Path, None] = "logs"):
    """
    Install console and (when ``log_dir`` is set) daily file logging.

    Existing root handlers are replaced, so calling this twice does not
    duplicate output.
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.setLevel(level)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(ColoredFormatter())
    root_logger.addHandler(console_handler)

    log_file = None
    if log_dir:
        log_file = build_log_file(log_dir)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        root_logger.addHandler(file_handler)

    for logger_name in ("pipebuild", "main"):
        logging.getLogger(logger_name).setLevel(level)
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(max(level, logging.WARNING))

    root_logger.debug(
        "Logging initialized | level=%s | log_file=%s", logging.getLevelName(level), log_file or "-",
    )
    return log_file
