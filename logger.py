"""
Logging configuration for KSPModManager.
Console and dated file output for the application logger, plus an
in-memory operation log that collects the messages of mod operations.
"""

import logging
import sys
from collections import deque
from datetime import datetime
from pathlib import Path

APP_LOGGER = "kspmodmanager"
LOG_FILE_PREFIX = "kspmodmanager_"
KEEP_LOG_FILES = 5


def setup_logging(config_dir: Path = None, debug: bool = False) -> logging.Logger:
    """
    Set up application logging.
    Log output goes to stderr so command output on stdout stays clean.

    Args:
        config_dir: Directory whose logs/ folder receives one log file per day (optional)
        debug: Enable debug level logging

    Returns:
        The application logger
    """
    logger = logging.getLogger(APP_LOGGER)

    # Already configured, operation logs don't count
    if any(not isinstance(h, OperationLog) for h in logger.handlers):
        return logger

    level = logging.DEBUG if debug else logging.INFO
    logger.setLevel(level)

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if config_dir:
        log_dir = Path(config_dir) / "logs"
        log_file = log_dir / f"{LOG_FILE_PREFIX}{datetime.now().strftime('%Y%m%d')}.log"
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
        except OSError as e:
            logger.warning(f"Could not create log file: {e}")
        else:
            # The file always gets the full detail
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
            if not debug:
                logger.setLevel(logging.DEBUG)
            _cleanup_old_logs(log_dir, keep=KEEP_LOG_FILES)

    return logger


def _cleanup_old_logs(log_dir: Path, keep: int = KEEP_LOG_FILES):
    """Remove old log files, keeping the most recent ones."""
    log = logging.getLogger(APP_LOGGER)
    for old_log in sorted(log_dir.glob(f"{LOG_FILE_PREFIX}*.log"), reverse=True)[keep:]:
        try:
            old_log.unlink()
        except OSError as e:
            log.debug(f"Could not remove old log {old_log.name}: {e}")


class OperationLog(logging.Handler):
    """
    Keeps the latest log messages in memory so they can be shown to the
    user after an operation finished.
    """

    def __init__(self, capacity: int = 500, level: int = logging.INFO):
        super().__init__(level)
        self._records: deque[logging.LogRecord] = deque(maxlen=capacity)
        self.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        self._records.append(record)

    @property
    def messages(self) -> list[str]:
        return [self.format(r) for r in self._records]

    @property
    def errors(self) -> list[str]:
        return [r.getMessage() for r in self._records if r.levelno >= logging.ERROR]

    def clear(self) -> None:
        self._records.clear()

    def attach(self, logger_name: str = APP_LOGGER) -> "OperationLog":
        logger = logging.getLogger(logger_name)
        if self not in logger.handlers:
            logger.addHandler(self)
        # Records below the logger level never reach us
        if logger.level == logging.NOTSET or logger.level > self.level:
            logger.setLevel(self.level)
        return self

    def detach(self, logger_name: str = APP_LOGGER) -> None:
        logging.getLogger(logger_name).removeHandler(self)
