# src/config/logging_config.py

"""Per-job timestamped logging configuration for nellis_scanner.

Every invocation (a scheduled scan, a reconcile pass, an interactive
watch) writes a dedicated log file inside ``logs/`` named after the job
and its launch time, e.g. ``logs/scan_20260214_153045.log``.  All
``nellis_scanner.*`` loggers route through that file.

Top-level jobs catch and log their failures instead of raising, so
these files are the only place a degraded upstream shows up.
"""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path

from src.config.settings import Settings

_DETAILED_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s | %(module)s:%(funcName)s:%(lineno)d | "
    "%(message)s"
)

_CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"

_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Chatty third-party loggers capped at WARNING
_NOISY_LOGGERS: tuple[str, ...] = ("curl_cffi", "urllib3", "charset_normalizer")


def _console_level() -> int:
    """Resolve the stderr level from ``NELLIS_LOG_LEVEL`` (default WARNING)."""
    name = os.getenv("NELLIS_LOG_LEVEL", "WARNING").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.WARNING


def setup_logging(job: str = "run") -> Path:
    """Initialise the root ``nellis_scanner`` logger for one job.

    Args:
        job: Short job name used as the log file prefix.

    Returns:
        The :class:`~pathlib.Path` to the log file created for this job.
    """
    logs_dir: Path = Settings.LOGS_DIR
    logs_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = logs_dir / f"{job}_{timestamp}.log"

    root_logger = logging.getLogger("nellis_scanner")
    root_logger.setLevel(logging.DEBUG)

    # Repeated calls (tests, run-once) keep the first handlers
    if root_logger.handlers:
        return log_file

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter(_DETAILED_FORMAT, datefmt=_DATE_FORMAT)
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(_console_level())
    console_handler.setFormatter(
        logging.Formatter(_CONSOLE_FORMAT, datefmt=_DATE_FORMAT)
    )

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.info(
        "Logging initialised for job '%s', log file: %s", job, log_file
    )

    return log_file
