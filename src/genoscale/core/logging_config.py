"""
Logging configuration for GenoScale.
Provides structured logging setup, profiling helpers and the threshold-filtered
sink used by the task dispatcher.
"""

import functools
import logging
import logging.config
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from .exceptions import InvalidConfiguration

TASK_LOGGER_NAME = "genoscale.task"

# Severity order exposed to dispatcher callers.
LEVELS: Dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
}
_ALIASES = {"WARNING": "WARN", "CRITICAL": "ERROR", "FATAL": "ERROR"}


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    enable_structured: bool = False,
    enable_performance: bool = False,
) -> None:
    """
    Setup logging configuration.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        enable_structured: Use the flat JSON-friendly formatter for the file handler
        enable_performance: Enable performance timing logs
    """

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

    config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "detailed": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(module)s - %(funcName)s:%(lineno)d - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "json": {
                "format": "%(asctime)s %(name)s %(levelname)s %(module)s %(funcName)s %(lineno)d %(message)s"
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "standard",
                "stream": sys.stdout,
            },
            "console_error": {
                "class": "logging.StreamHandler",
                "level": "ERROR",
                "formatter": "detailed",
                "stream": sys.stderr,
            },
        },
        "loggers": {
            "genoscale": {
                "level": log_level,
                "handlers": ["console"],
                "propagate": False,
            },
            "genoscale.error": {
                "level": "ERROR",
                "handlers": ["console_error"],
                "propagate": False,
            },
            TASK_LOGGER_NAME: {"level": "DEBUG", "handlers": [], "propagate": False},
            "distributed": {"level": "WARNING", "handlers": ["console"], "propagate": False},
        },
        "root": {"level": log_level, "handlers": ["console"]},
    }

    if log_file:
        config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level,
            "formatter": "json" if enable_structured else "detailed",
            "filename": log_file,
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5,
            "encoding": "utf8",
        }

        for logger_config in config["loggers"].values():
            logger_config["handlers"].append("file")
        config["root"]["handlers"].append("file")

    if enable_performance:
        config["loggers"]["genoscale.performance"] = {
            "level": "DEBUG",
            "handlers": ["console"],
            "propagate": False,
        }

    logging.config.dictConfig(config)


def get_logger(name: str = __name__) -> logging.Logger:
    """Get a configured logger instance."""
    return logging.getLogger(name)


def get_performance_logger():
    """Get a logger for performance monitoring."""
    return logging.getLogger("genoscale.performance")


def get_task_logger():
    """Logger for code running inside dispatched tasks.

    Records sent here are captured per task and forwarded through the
    dispatcher's ThresholdLogSink.
    """
    return logging.getLogger(TASK_LOGGER_NAME)


def normalize_level(level: Union[str, int]) -> str:
    """Map a level name or number onto DEBUG/INFO/WARN/ERROR."""
    if isinstance(level, int):
        if level >= logging.ERROR:
            return "ERROR"
        if level >= logging.WARNING:
            return "WARN"
        if level >= logging.INFO:
            return "INFO"
        return "DEBUG"
    name = str(level).strip().upper()
    name = _ALIASES.get(name, name)
    if name not in LEVELS:
        raise InvalidConfiguration(
            f"log level must be one of {list(LEVELS)}", config_key="log_threshold", value=level
        )
    return name


class PerformanceTimer:
    """Context manager for timing operations."""

    def __init__(self, operation_name: str, logger: logging.Logger | None = None):
        self.operation_name = operation_name
        self.logger = logger or get_performance_logger()
        self.start_time: Optional[float] = None
        self.duration: Optional[float] = None

    def __enter__(self):
        self.start_time = datetime.now().timestamp()
        self.logger.debug(f"Starting {self.operation_name}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time:
            self.duration = datetime.now().timestamp() - self.start_time
            self.logger.info(f"Completed {self.operation_name} in {self.duration:.3f}s")

            if exc_type:
                self.logger.error(f"Failed {self.operation_name}: {exc_val}")


def log_function_call(func):
    """Decorator to log function calls with timing."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = get_performance_logger()
        func_name = f"{func.__module__}.{func.__name__}"

        with PerformanceTimer(func_name, logger):
            try:
                result = func(*args, **kwargs)
                logger.debug(f"Successfully completed {func_name}")
                return result
            except Exception as e:
                logger.error(f"Error in {func_name}: {e}", exc_info=True)
                raise

    return wrapper


class ThresholdLogSink:
    """Forward leveled events to a logger or callable above a minimum severity.

    The threshold is read on every ``emit`` so changing it affects only
    events emitted afterwards.
    """

    def __init__(
        self,
        target: Union[logging.Logger, Callable[[str, str, Dict[str, Any]], None], None] = None,
        threshold: Union[str, int] = "INFO",
    ):
        self.target = target if target is not None else get_logger("genoscale.dispatch")
        self._threshold = normalize_level(threshold)
        self._lock = threading.Lock()

    @property
    def threshold(self) -> str:
        return self._threshold

    def set_threshold(self, level: Union[str, int]) -> None:
        with self._lock:
            self._threshold = normalize_level(level)

    def enabled_for(self, level: Union[str, int]) -> bool:
        return LEVELS[normalize_level(level)] >= LEVELS[self._threshold]

    def emit(self, level: Union[str, int], message: str, **context: Any) -> bool:
        """Forward one event; returns False when it was filtered out."""
        name = normalize_level(level)
        with self._lock:
            if LEVELS[name] < LEVELS[self._threshold]:
                return False
        if isinstance(self.target, logging.Logger):
            prefix = f"[task {context['index']}] " if "index" in context else ""
            self.target.log(LEVELS[name], f"{prefix}{message}", extra={"task_context": context})
        else:
            self.target(name, message, context)
        return True


class TaskLogCapture(logging.Handler):
    """Collect task-logger records emitted from the current thread."""

    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self._thread_id = threading.get_ident()
        self.records: list[tuple[str, str]] = []

    def emit(self, record: logging.LogRecord) -> None:
        if record.thread != self._thread_id:
            return
        self.records.append((normalize_level(record.levelno), record.getMessage()))

    def __enter__(self):
        task_logger = get_task_logger()
        task_logger.setLevel(logging.DEBUG)
        task_logger.propagate = False
        task_logger.addHandler(self)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        get_task_logger().removeHandler(self)
