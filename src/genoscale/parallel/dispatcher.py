"""Parallel task dispatch with per-task failure capture and resumable rounds.

A dispatch round applies one function to every input on a fixed-size pool of
workers. Each position ends as succeeded, failed or timed out; one task's
failure never stops its siblings. Passing the previous ResultSet as
``resume_from`` re-runs only the positions that did not succeed.
"""

import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED
from concurrent.futures import Future
from concurrent.futures import wait
from typing import Any, Callable, Iterable, Sequence

from ..core.exceptions import InvalidConfiguration
from ..core.logging_config import ThresholdLogSink
from ..core.logging_config import get_logger
from ..core.settings import DispatchSettings
from .backends import TaskPayload
from .backends import WorkerBackend
from .backends import get_backend
from .outcomes import Outcome
from .outcomes import ResultSet
from .outcomes import TaskState

logger = get_logger(__name__)


class Dispatcher:
    """Run independent tasks on a worker pool and collect their outcomes.

    Args:
        config: Worker count, timeout, back-end and log threshold
        backend: Back-end to reuse across rounds; built from ``config`` per
            round when omitted
        log_sink: Where task log records and task failures are forwarded

    Examples:
        >>> dispatcher = Dispatcher(DispatchSettings(workers=2, backend="thread"))
        >>> results = dispatcher.dispatch([1, "2", 3], math.sqrt)
        >>> results.ok()
        [True, False, True]
        >>> fixed = dispatcher.dispatch([1, 2, 3], math.sqrt, resume_from=results)
    """

    def __init__(self,
                 config: DispatchSettings | None = None,
                 backend: WorkerBackend | None = None,
                 log_sink: ThresholdLogSink | None = None):
        self.config = config or DispatchSettings()
        self.backend = backend
        self.log_sink = log_sink or ThresholdLogSink(threshold=self.config.log_threshold)

    def set_log_threshold(self, level: str) -> None:
        """Change the minimum forwarded severity for subsequent events."""
        self.log_sink.set_threshold(level)

    def _make_backend(self, config: DispatchSettings) -> WorkerBackend:
        kwargs: dict[str, Any] = {}
        if config.backend == "dask" and config.scheduler_address:
            kwargs["address"] = config.scheduler_address
        return get_backend(config.backend, config.workers, capture_logs=config.capture_logs, **kwargs)

    def dispatch(self,
                 inputs: Iterable[Any],
                 fn: Callable[[Any], Any],
                 config: DispatchSettings | None = None,
                 resume_from: Sequence[Outcome] | None = None) -> ResultSet:
        """Apply ``fn`` to every input and return outcomes in input order.

        Args:
            inputs: Task inputs; a task is identified by its position
            fn: Function applied to each input
            config: Overrides the dispatcher's configuration for this round
            resume_from: Outcomes of a previous round over the same positions;
                succeeded positions are copied over without running again

        Returns:
            ResultSet with one Outcome per input
        """
        config = config or self.config
        inputs = list(inputs)
        if resume_from is not None and len(resume_from) != len(inputs):
            raise InvalidConfiguration(
                f"resume_from has {len(resume_from)} outcomes for {len(inputs)} inputs",
                config_key="resume_from", value=len(resume_from),
            )

        outcomes: list[Outcome] = []
        pending: deque[int] = deque()
        for index in range(len(inputs)):
            prior = resume_from[index] if resume_from is not None else None
            if prior is not None and prior.ok:
                outcomes.append(prior)
                continue
            outcomes.append(Outcome(index=index, attempts=prior.attempts if prior is not None else 0))
            pending.append(index)

        if not pending:
            return ResultSet(outcomes)

        if resume_from is not None:
            logger.info(f"Resuming {len(pending)} of {len(inputs)} tasks")

        backend = self.backend or self._make_backend(config)
        started = time.perf_counter()
        try:
            self._run(backend, inputs, fn, outcomes, pending, config)
        finally:
            if self.backend is None:
                backend.shutdown()

        results = ResultSet(outcomes)
        summary = results.summary()
        logger.info(
            f"Dispatched {len(inputs)} tasks on {backend.name} backend in "
            f"{time.perf_counter() - started:.2f}s: {summary['succeeded']} succeeded, "
            f"{summary['failed']} failed, {summary['timed_out']} timed out"
        )
        return results

    def _run(self,
             backend: WorkerBackend,
             inputs: list[Any],
             fn: Callable[[Any], Any],
             outcomes: list[Outcome],
             pending: deque,
             config: DispatchSettings) -> None:
        timeout = config.timeout
        running: dict[Future, tuple[int, float]] = {}

        while pending or running:
            while pending and len(running) < config.workers:
                index = pending.popleft()
                outcome = outcomes[index]
                outcome.transition(TaskState.RUNNING)
                outcome.attempts += 1
                start = time.monotonic()
                try:
                    future = backend.submit(fn, inputs[index])
                except Exception as e:
                    self._complete(outcome, TaskPayload.from_exception(e), timeout)
                    continue
                running[future] = (index, start)

            if not running:
                continue

            wait_for = None
            if timeout is not None:
                now = time.monotonic()
                wait_for = max(0.0, min(begun + timeout - now for _, begun in running.values()))

            done, _ = wait(list(running), timeout=wait_for, return_when=FIRST_COMPLETED)
            for future in done:
                index, _ = running.pop(future)
                self._complete(outcomes[index], future.result(), timeout)

            if timeout is None:
                continue
            now = time.monotonic()
            for future, (index, start) in list(running.items()):
                if now - start >= timeout:
                    del running[future]
                    backend.release(future)
                    self._time_out(outcomes[index], timeout, now - start)

    def _forward_logs(self, outcome: Outcome) -> None:
        # Records arrive when the task completes; the threshold in force at
        # that moment decides which are forwarded.
        for level, message in outcome.log:
            self.log_sink.emit(level, message, index=outcome.index)

    def _complete(self, outcome: Outcome, payload: TaskPayload, timeout: float | None) -> None:
        outcome.elapsed = payload.elapsed
        outcome.log = list(payload.log)
        self._forward_logs(outcome)

        if timeout is not None and payload.elapsed > timeout:
            self._time_out(outcome, timeout, payload.elapsed)
            return

        if payload.ok:
            outcome.transition(TaskState.SUCCEEDED)
            outcome.value = payload.value
            outcome.error_type = outcome.message = outcome.traceback = None
            self.log_sink.emit("DEBUG", f"task succeeded in {payload.elapsed:.3f}s", index=outcome.index)
            return

        outcome.transition(TaskState.FAILED)
        outcome.value = None
        outcome.error_type = payload.error_type
        outcome.message = payload.message
        outcome.traceback = payload.traceback
        self.log_sink.emit("ERROR", f"{payload.error_type}: {payload.message}", index=outcome.index)

    def _time_out(self, outcome: Outcome, timeout: float, elapsed: float) -> None:
        outcome.transition(TaskState.TIMED_OUT)
        outcome.value = None
        outcome.elapsed = elapsed
        outcome.error_type = "Timeout"
        outcome.message = f"Task {outcome.index} exceeded timeout of {timeout}s"
        outcome.traceback = None
        self.log_sink.emit("WARN", outcome.message, index=outcome.index)


def dispatch(inputs: Iterable[Any],
             fn: Callable[[Any], Any],
             resume_from: Sequence[Outcome] | None = None,
             log_sink: ThresholdLogSink | None = None,
             **config: Any) -> ResultSet:
    """Dispatch with a one-off Dispatcher; keyword arguments build DispatchSettings."""
    return Dispatcher(DispatchSettings(**config), log_sink=log_sink).dispatch(
        inputs, fn, resume_from=resume_from
    )
