"""
Centralized logging configuration for PickIT.

Every record carries the name of the thread that produced it. Commands from
the two role views run on Flask request threads, payment simulations run on
their own "Pay-<job>" threads and pairing confirmations on "Pair-<shop>"
timers, so the thread name is usually enough to tell which flow a line
belongs to.

Log Format:
    2026-10-18 10:15:30 [INFO    ] [MainThread] pickit.app - Starting PickIT
    2026-10-18 10:15:31 [INFO    ] [Pay-JOB-4821] pickit.services.payment_service - Payment verified
    2026-10-18 10:15:32 [INFO    ] [Thread-3] pickit.job.JOB-4821 - PRINTING -> READY

Usage:
    # At application startup
    from logging_config import setup_logging, get_logger

    setup_logging(log_level=logging.INFO, enable_file_logging=True)

    # In modules
    logger = get_logger(__name__)

    # Per-job lifecycle trail
    job_logger = get_job_logger("JOB-4821")
"""

import logging
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


APP_LOGGER_NAME = "pickit"

_LOG_FORMAT = "%(asctime)s [%(levelname)-8s] [%(thread_name)s] %(name)s - %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_MAX_LOG_BYTES = 5 * 1024 * 1024
_LOG_BACKUPS = 3


class ThreadContextFilter(logging.Filter):
    """
    Adds ``thread_name`` and ``thread_id`` to every record.

    Never drops a record.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        current_thread = threading.current_thread()
        record.thread_name = current_thread.name
        record.thread_id = threading.get_ident()
        return True


def _file_handler(path: Path, level: int, formatter: logging.Formatter,
                  thread_filter: logging.Filter) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        filename=path,
        maxBytes=_MAX_LOG_BYTES,
        backupCount=_LOG_BACKUPS,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(thread_filter)
    return handler


def setup_logging(
    app_name: str = APP_LOGGER_NAME,
    log_level: int = logging.INFO,
    log_dir: Optional[Path] = None,
    enable_file_logging: bool = False,
) -> logging.Logger:
    """
    Configure the application logger tree.

    Sets up a console handler, and when ``enable_file_logging`` is True a
    rotating application log plus a separate ERROR-only log.

    Args:
        app_name: Name of the root application logger
        log_level: Minimum log level
        log_dir: Directory for log files (default: ./logs next to this file)
        enable_file_logging: Whether to write rotating log files

    Returns:
        The configured application logger
    """
    logger = logging.getLogger(app_name)
    logger.setLevel(log_level)
    logger.propagate = False

    # Re-configuration replaces handlers rather than stacking them
    logger.handlers.clear()

    formatter = logging.Formatter(fmt=_LOG_FORMAT, datefmt=_DATE_FORMAT)
    thread_filter = ThreadContextFilter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(thread_filter)
    logger.addHandler(console_handler)

    if enable_file_logging:
        if log_dir is None:
            log_dir = Path(__file__).parent / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)

        app_log_file = log_dir / f"{app_name}.log"
        logger.addHandler(_file_handler(app_log_file, log_level, formatter, thread_filter))
        logger.addHandler(
            _file_handler(log_dir / f"{app_name}_error.log", logging.ERROR, formatter, thread_filter)
        )
        logger.info(f"File logging enabled: {app_log_file}")

    logger.info(f"Logging configured at level {logging.getLevelName(log_level)}")
    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger under the ``pickit`` namespace.

    Args:
        name: Module name (typically __name__)

    Returns:
        Logger named ``pickit.<name>``, e.g. ``pickit.services.job_service``
    """
    if not name.startswith(APP_LOGGER_NAME):
        name = f"{APP_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def get_job_logger(job_id: str) -> logging.Logger:
    """
    Get the logger that records one job's lifecycle trail.

    Args:
        job_id: Job identifier (e.g. "JOB-4821")

    Returns:
        Logger named ``pickit.job.<job_id>``
    """
    return logging.getLogger(f"{APP_LOGGER_NAME}.job.{job_id}")


def set_thread_name(name: str) -> None:
    """Rename the current thread so log lines show which flow they belong to."""
    threading.current_thread().name = name
