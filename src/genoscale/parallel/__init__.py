"""Parallel task dispatch for genomic workloads.

Independent tasks run on serial, thread, process or dask back-ends; every
task ends as an Outcome and failed positions can be re-run on their own.
"""

from .backends import DaskBackend
from .backends import ProcessBackend
from .backends import SerialBackend
from .backends import ThreadBackend
from .backends import WorkerBackend
from .backends import get_backend
from .dispatcher import Dispatcher
from .dispatcher import dispatch
from .outcomes import Outcome
from .outcomes import ResultSet
from .outcomes import TaskState
from .reduce import SourceTask
from .reduce import reduce_by_file

__all__ = [
    "DaskBackend",
    "Dispatcher",
    "Outcome",
    "ProcessBackend",
    "ResultSet",
    "SerialBackend",
    "SourceTask",
    "TaskState",
    "ThreadBackend",
    "WorkerBackend",
    "dispatch",
    "get_backend",
    "reduce_by_file",
]
