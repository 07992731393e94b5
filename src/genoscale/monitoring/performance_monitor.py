"""Resource profiling for chunked processing runs and dispatch rounds.

Tracks records and chunks seen, peak resident memory and CPU for each
monitored run, so the effect of chunk size and worker count on memory can be
compared.
"""

import json
import time
from dataclasses import asdict
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import psutil

from ..core.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class TaskMetrics:
    """Metrics for one monitored run."""
    task_name: str
    start_time: float
    end_time: float | None = None
    peak_memory_mb: float = 0.0
    start_memory_mb: float = 0.0
    peak_cpu_percent: float = 0.0
    total_records: int = 0
    chunk_count: int = 0
    failed_chunks: int = 0
    worker_count: int = 1
    records_per_sec: float = 0.0

    @property
    def duration(self) -> float:
        return (self.end_time or time.time()) - self.start_time

    @property
    def memory_growth_mb(self) -> float:
        return max(0.0, self.peak_memory_mb - self.start_memory_mb)


class PerformanceMonitor:
    """Record per-run throughput and memory metrics."""

    def __init__(self):
        self.active_tasks: dict[str, TaskMetrics] = {}
        self.completed_tasks: dict[str, TaskMetrics] = {}
        self._counter = 0

        try:
            self._process = psutil.Process()
        except psutil.Error:
            self._process = None

    def start_monitoring(self, task_name: str, worker_count: int = 1) -> str:
        """Start monitoring a run and return its id."""
        self._counter += 1
        task_id = f"{task_name}_{self._counter}"
        task = TaskMetrics(task_name=task_name, start_time=time.time(), worker_count=worker_count)
        task.start_memory_mb = self._rss_mb()
        task.peak_memory_mb = task.start_memory_mb
        self.active_tasks[task_id] = task
        logger.debug(f"Started monitoring {task_name} (ID: {task_id})")
        return task_id

    def update_metrics(self,
                       task_id: str,
                       records_processed: int = 0,
                       chunks_completed: int = 0,
                       chunks_failed: int = 0) -> None:
        """Add counts for an active run and sample memory/CPU.

        Args:
            task_id: Run identifier
            records_processed: Records processed since the last update
            chunks_completed: Chunks completed since the last update
            chunks_failed: Chunks that failed since the last update
        """
        task = self.active_tasks.get(task_id)
        if task is None:
            logger.warning(f"Task {task_id} not found for metric update")
            return

        task.total_records += records_processed
        task.chunk_count += chunks_completed
        task.failed_chunks += chunks_failed
        self._sample(task)

    def _rss_mb(self) -> float:
        if not self._process:
            return 0.0
        try:
            return self._process.memory_info().rss / 1024 / 1024
        except psutil.Error as e:
            logger.debug(f"Could not read memory info: {e}")
            return 0.0

    def _sample(self, task: TaskMetrics) -> None:
        task.peak_memory_mb = max(task.peak_memory_mb, self._rss_mb())
        if not self._process:
            return
        try:
            task.peak_cpu_percent = max(task.peak_cpu_percent, self._process.cpu_percent())
        except psutil.Error as e:
            logger.debug(f"Could not read CPU usage: {e}")

    def stop_monitoring(self, task_id: str) -> TaskMetrics:
        """Stop monitoring a run and compute throughput."""
        if task_id not in self.active_tasks:
            raise KeyError(f"Task {task_id} not found")

        task = self.active_tasks.pop(task_id)
        self._sample(task)
        task.end_time = time.time()
        if task.duration > 0:
            task.records_per_sec = task.total_records / task.duration
        self.completed_tasks[task_id] = task

        logger.info(
            f"{task.task_name} finished in {task.duration:.2f}s: "
            f"{task.total_records} records in {task.chunk_count} chunks, "
            f"peak memory {task.peak_memory_mb:.1f}MB"
        )
        return task

    def get_task_stats(self, task_id: str) -> dict[str, Any]:
        """Statistics for one run, active or completed."""
        task = self.completed_tasks.get(task_id) or self.active_tasks.get(task_id)
        if not task:
            raise KeyError(f"Task {task_id} not found")

        stats = asdict(task)
        stats.update({
            "status": "running" if task.end_time is None else "completed",
            "duration_seconds": task.duration,
            "memory_growth_mb": task.memory_growth_mb,
            "start_time": datetime.fromtimestamp(task.start_time).isoformat(),
            "end_time": datetime.fromtimestamp(task.end_time).isoformat() if task.end_time else None,
        })
        return stats

    def get_all_stats(self) -> dict[str, dict[str, Any]]:
        return {task_id: self.get_task_stats(task_id)
                for task_id in [*self.completed_tasks, *self.active_tasks]}

    def export_report(self, output_path: Path) -> Path:
        """Write all run statistics as JSON."""
        output_path = Path(output_path)
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(self.get_all_stats(), f, indent=2)
        logger.info(f"Performance report exported to {output_path}")
        return output_path
