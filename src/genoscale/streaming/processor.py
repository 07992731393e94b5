"""Chunked yield-map-reduce over a single source.

A ChunkedProcessor reads one chunk, maps it to a summary, folds it into an
explicit Accumulator and only then asks the source for the next chunk, so at
most one decoded chunk is alive at a time whatever the size of the input.
"""

import copy
from typing import Any, Callable

from ..core.logging_config import get_logger
from ..monitoring.performance_monitor import PerformanceMonitor
from .sources import BaseChunkSource

logger = get_logger(__name__)

MapFn = Callable[[Any], Any]
CombineFn = Callable[[Any, Any], Any]


class Accumulator:
    """Running summary plus the number of chunks and records folded into it."""

    def __init__(self, identity: Any, combine: CombineFn):
        self.identity = identity
        self.combine = combine
        self.reset()

    def reset(self) -> None:
        # Mutable identities (arrays, frames) must not be shared between runs.
        self.value = copy.deepcopy(self.identity)
        self.chunks = 0
        self.records = 0

    def add(self, summary: Any, n_records: int = 0) -> Any:
        self.value = self.combine(self.value, summary)
        self.chunks += 1
        self.records += n_records
        return self.value

    def __repr__(self) -> str:
        return f"Accumulator(chunks={self.chunks}, records={self.records})"


class ChunkedProcessor:
    """Map each chunk of a source to a summary and reduce the summaries.

    Examples:
        >>> source = SequenceSource(list(range(10)), chunk_size=3)
        >>> ChunkedProcessor(source, sum, lambda a, b: a + b, 0).process()
        45
    """

    def __init__(self,
                 source: BaseChunkSource,
                 map_fn: MapFn,
                 combine_fn: CombineFn,
                 identity: Any,
                 monitor: PerformanceMonitor | None = None):
        self.source = source
        self.map_fn = map_fn
        self.accumulator = Accumulator(identity, combine_fn)
        self.monitor = monitor
        self.last_run_id: str | None = None

    def open(self) -> "ChunkedProcessor":
        """Open the source; chunk size is validated here, before any read."""
        self.source.open()
        return self

    def next_chunk(self) -> Any | None:
        return self.source.next_chunk()

    def close(self) -> None:
        self.source.close()

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def process(self) -> Any:
        """Fold every chunk of the source and return the combined summary.

        Any error from the source, the map function or the combine function
        aborts the run; the source is closed either way.
        """
        self.accumulator.reset()
        run_id = None
        try:
            self.open()
            if self.monitor is not None:
                run_id = self.monitor.start_monitoring(f"process_{self.source.name}")
                self.last_run_id = run_id

            while True:
                chunk = self.next_chunk()
                if chunk is None:
                    break
                n_records = len(chunk)
                summary = self.map_fn(chunk)
                del chunk
                self.accumulator.add(summary, n_records)
                logger.debug(
                    f"{self.source.name}: chunk {self.accumulator.chunks} "
                    f"({n_records} records, {self.accumulator.records} total)"
                )
                if run_id is not None:
                    self.monitor.update_metrics(run_id, records_processed=n_records, chunks_completed=1)
        except Exception:
            if run_id is not None:
                self.monitor.update_metrics(run_id, chunks_failed=1)
            raise
        finally:
            self.close()
            if run_id is not None:
                self.monitor.stop_monitoring(run_id)

        logger.info(
            f"Processed {self.accumulator.records} records in "
            f"{self.accumulator.chunks} chunks from {self.source.name}"
        )
        return self.accumulator.value


def reduce_by_yield(source: BaseChunkSource,
                    map_fn: MapFn,
                    combine_fn: CombineFn,
                    identity: Any) -> Any:
    """One-shot chunked map/reduce over ``source``."""
    return ChunkedProcessor(source, map_fn, combine_fn, identity).process()
