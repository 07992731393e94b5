"""Core configuration, logging and error types."""

from .exceptions import DecodeError
from .exceptions import DispatchError
from .exceptions import GenoScaleException
from .exceptions import InvalidConfiguration
from .exceptions import InvalidTransition
from .exceptions import SourceUnavailable
from .exceptions import TaskFailure
from .exceptions import TaskTimeout
from .logging_config import PerformanceTimer
from .logging_config import ThresholdLogSink
from .logging_config import get_logger
from .logging_config import get_task_logger
from .logging_config import setup_logging
from .settings import ChunkSettings
from .settings import DispatchSettings
from .settings import Settings
from .settings import get_settings

__all__ = [
    "ChunkSettings",
    "DecodeError",
    "DispatchError",
    "DispatchSettings",
    "GenoScaleException",
    "InvalidConfiguration",
    "InvalidTransition",
    "PerformanceTimer",
    "Settings",
    "SourceUnavailable",
    "TaskFailure",
    "TaskTimeout",
    "ThresholdLogSink",
    "get_logger",
    "get_settings",
    "get_task_logger",
    "setup_logging",
]
