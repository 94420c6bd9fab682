"""
Logging setup for PrintDispatch.

Two kinds of threads write to the log: Flask request threads (job
creation, wallet calls, uploads) and the MessageBus listener thread
(printer status events). Each line names its thread so a job can be
followed from the request that created it to the status that closed it.

Log Format:
    2026-10-19 10:15:30 [INFO    ] [MainThread] print_dispatch.app - Starting PrintDispatch
    2026-10-19 10:15:31 [INFO    ] [MessageBus] print_dispatch.core.message_bus - Listening on printer/*/status
    2026-10-19 10:15:32 [INFO    ] [Thread-3] print_dispatch.job.a1b2c3d4 - Command published

Handlers:
    - stdout, always
    - print_dispatch.log and print_dispatch_error.log (rotating), when
      file logging is enabled (production)

Usage:
    from logging_config import setup_logging, get_logger, get_job_logger

    setup_logging(log_level=logging.INFO, enable_file_logging=False)

    logger = get_logger(__name__)
    get_job_logger(job.job_id).info("Status pending -> printing")
"""

import logging
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


ROOT_LOGGER_NAME = "print_dispatch"

LOG_FORMAT = "%(asctime)s [%(levelname)-8s] [%(thread_name)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5

# Per-request access lines from the dev server drown out job lines
NOISY_LOGGERS = ("werkzeug",)


class ThreadContextFilter(logging.Filter):
    """Stamp each record with the emitting thread's name."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.thread_name = threading.current_thread().name
        return True


def _attach(
    logger: logging.Logger,
    handler: logging.Handler,
    level: int,
    formatter: logging.Formatter,
    thread_filter: logging.Filter,
) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(thread_filter)
    logger.addHandler(handler)


def _rotating(path: Path) -> RotatingFileHandler:
    return RotatingFileHandler(
        filename=path,
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8"
    )


def setup_logging(
    app_name: str = ROOT_LOGGER_NAME,
    log_level: int = logging.INFO,
    log_dir: Optional[Path] = None,
    enable_file_logging: bool = True,
) -> logging.Logger:
    """
    Configure the application logger tree.

    Safe to call more than once; handlers from a previous call are
    replaced, so each app built by the tests logs exactly once per record.

    Args:
        app_name: Root of the application logger tree
        log_level: Minimum level for the application loggers
        log_dir: Directory for log files (default: ./logs next to this file)
        enable_file_logging: Also write rotating log files

    Returns:
        The application root logger
    """
    logger = logging.getLogger(app_name)
    logger.setLevel(log_level)
    logger.propagate = False
    logger.handlers.clear()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    thread_filter = ThreadContextFilter()

    _attach(logger, logging.StreamHandler(sys.stdout), log_level, formatter, thread_filter)

    if enable_file_logging:
        log_dir = Path(log_dir) if log_dir else Path(__file__).parent / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)

        app_log_file = log_dir / f"{app_name}.log"
        _attach(logger, _rotating(app_log_file), log_level, formatter, thread_filter)
        _attach(logger, _rotating(log_dir / f"{app_name}_error.log"), logging.ERROR, formatter, thread_filter)

        logger.info(f"File logging enabled: {app_log_file}")

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    logger.info(f"Logging configured at level {logging.getLevelName(log_level)}")
    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Logger under the application tree.

    get_logger("services.dispatcher") -> "print_dispatch.services.dispatcher"
    """
    if not name.startswith(ROOT_LOGGER_NAME):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def get_job_logger(job_id: str) -> logging.Logger:
    """
    Logger for one print job, named after the first 8 characters of its id.

    Every stage of a job (creation, publish, status reports, file release)
    logs through this, so ``grep job.a1b2c3d4`` shows its whole lifecycle.
    """
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.job.{job_id[:8]}")


def set_thread_name(name: str) -> None:
    """Rename the current thread; the name shows up in every log line."""
    threading.current_thread().name = name
