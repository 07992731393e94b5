"""
GenoScale - chunked and parallel processing patterns for large genomic datasets.
"""

__version__ = "0.1.0"

from .core.exceptions import DecodeError
from .core.exceptions import InvalidConfiguration
from .core.exceptions import SourceUnavailable
from .core.exceptions import TaskFailure
from .core.exceptions import TaskTimeout
from .core.settings import DispatchSettings
from .parallel.dispatcher import Dispatcher
from .parallel.dispatcher import dispatch
from .parallel.outcomes import Outcome
from .parallel.outcomes import ResultSet
from .parallel.outcomes import TaskState
from .parallel.reduce import reduce_by_file
from .streaming.processor import Accumulator
from .streaming.processor import ChunkedProcessor
from .streaming.processor import reduce_by_yield
from .streaming.sources import open_source

__all__ = [
    "Accumulator",
    "ChunkedProcessor",
    "DecodeError",
    "DispatchSettings",
    "Dispatcher",
    "InvalidConfiguration",
    "Outcome",
    "ResultSet",
    "SourceUnavailable",
    "TaskFailure",
    "TaskState",
    "TaskTimeout",
    "__version__",
    "dispatch",
    "open_source",
    "reduce_by_file",
    "reduce_by_yield",
]
