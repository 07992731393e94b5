"""Profiling helpers for chunked and parallel runs."""

from .performance_monitor import PerformanceMonitor
from .performance_monitor import TaskMetrics

__all__ = ["PerformanceMonitor", "TaskMetrics"]
