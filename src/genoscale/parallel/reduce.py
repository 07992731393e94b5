"""Chunked reduction distributed over independent sources.

Each source (a path or an unopened chunk source) becomes one dispatched task
that runs a ChunkedProcessor over it. Successful per-source summaries are then
combined; failed sources stay visible in the returned ResultSet and can be
retried with ``resume_from``.
"""

import copy
import functools
from pathlib import Path
from typing import Any, Callable, Sequence

from ..core.logging_config import get_logger
from ..streaming.processor import ChunkedProcessor
from ..streaming.sources import BaseChunkSource
from ..streaming.sources import open_source
from .dispatcher import Dispatcher
from .outcomes import Outcome
from .outcomes import ResultSet

logger = get_logger(__name__)


class SourceTask:
    """Picklable task that reduces one source to a summary."""

    def __init__(self,
                 map_fn: Callable[[Any], Any],
                 combine_fn: Callable[[Any, Any], Any],
                 identity: Any,
                 chunk_size: int = 100_000,
                 **source_kwargs: Any):
        self.map_fn = map_fn
        self.combine_fn = combine_fn
        self.identity = identity
        self.chunk_size = chunk_size
        self.source_kwargs = source_kwargs

    def make_source(self, source: BaseChunkSource | str | Path) -> BaseChunkSource:
        if isinstance(source, BaseChunkSource):
            return source
        return open_source(source, self.chunk_size, **self.source_kwargs)

    def __call__(self, source: BaseChunkSource | str | Path) -> Any:
        processor = ChunkedProcessor(self.make_source(source), self.map_fn, self.combine_fn, self.identity)
        return processor.process()


def combine_results(results: ResultSet,
                    combine_fn: Callable[[Any, Any], Any],
                    identity: Any) -> Any:
    """Fold the values of the successful outcomes."""
    values = [outcome.value for outcome in results if outcome.ok]
    return functools.reduce(combine_fn, values, copy.deepcopy(identity))


def reduce_by_file(sources: Sequence[BaseChunkSource | str | Path],
                   map_fn: Callable[[Any], Any],
                   combine_fn: Callable[[Any, Any], Any],
                   identity: Any,
                   chunk_size: int = 100_000,
                   dispatcher: Dispatcher | None = None,
                   resume_from: Sequence[Outcome] | None = None,
                   **source_kwargs: Any) -> tuple[Any, ResultSet]:
    """Reduce every source in parallel and combine the per-source summaries.

    Args:
        sources: Paths or unopened sources; each is opened inside its own task
        map_fn: Chunk -> summary
        combine_fn: Associative, order-independent summary combination
        identity: Summary of an empty input
        chunk_size: Records per chunk for sources given as paths
        dispatcher: Dispatcher to use (default configuration otherwise)
        resume_from: Previous ResultSet, to retry only failed sources
        **source_kwargs: Passed to ``open_source`` (e.g. ``regions``)

    Returns:
        (combined summary over successful sources, per-source ResultSet)
    """
    dispatcher = dispatcher or Dispatcher()
    task = SourceTask(map_fn, combine_fn, identity, chunk_size, **source_kwargs)
    results = dispatcher.dispatch(list(sources), task, resume_from=resume_from)

    failed = results.failed_indices()
    if failed:
        logger.warning(f"{len(failed)} of {len(results)} sources failed: {failed}")
    return combine_results(results, combine_fn, identity), results
