"""Worker back-ends for the task dispatcher.

Every back-end runs tasks through ``execute_task`` so the dispatcher always
receives a ``TaskPayload``: the return value, or the exception type, message
and formatted traceback, plus any records logged to the task logger. Back-ends
return ``concurrent.futures.Future`` objects and know how to release a worker
whose task ran past its timeout.
"""

from __future__ import annotations

import multiprocessing as mp
import threading
import time
import traceback
from concurrent.futures import Future
from contextlib import nullcontext
from dataclasses import dataclass
from dataclasses import field
from typing import Any, Callable

from ..core.exceptions import InvalidConfiguration
from ..core.logging_config import TaskLogCapture
from ..core.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class TaskPayload:
    """What a worker reports back for one task."""

    ok: bool
    value: Any = None
    error_type: str | None = None
    message: str | None = None
    traceback: str | None = None
    elapsed: float = 0.0
    log: list[tuple[str, str]] = field(default_factory=list)

    @classmethod
    def from_exception(cls, exc: BaseException, elapsed: float = 0.0,
                       log: list[tuple[str, str]] | None = None) -> TaskPayload:
        return cls(
            ok=False,
            error_type=type(exc).__name__,
            message=str(exc),
            traceback="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
            elapsed=elapsed,
            log=log or [],
        )


def execute_task(fn: Callable[[Any], Any], value: Any, capture_logs: bool = True) -> TaskPayload:
    """Run ``fn(value)`` and capture its result or failure."""
    start = time.perf_counter()
    capture = TaskLogCapture() if capture_logs else None
    try:
        with capture if capture is not None else nullcontext():
            result = fn(value)
    except Exception as e:
        return TaskPayload.from_exception(
            e, elapsed=time.perf_counter() - start, log=capture.records if capture else []
        )
    return TaskPayload(
        ok=True,
        value=result,
        elapsed=time.perf_counter() - start,
        log=capture.records if capture else [],
    )


def _resolve(future: Future, payload: TaskPayload) -> None:
    if not future.done():
        future.set_result(payload)


class WorkerBackend:
    """Base class for concurrency back-ends."""

    name = "base"

    def __init__(self, workers: int = 1, capture_logs: bool = True):
        if workers < 1:
            raise InvalidConfiguration("workers must be >= 1", config_key="workers", value=workers)
        self.workers = workers
        self.capture_logs = capture_logs

    def submit(self, fn: Callable[[Any], Any], value: Any) -> Future:
        raise NotImplementedError("Subclasses must implement submit")

    def release(self, future: Future) -> None:
        """Stop waiting for ``future`` and free its worker where possible."""
        future.cancel()

    def shutdown(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(workers={self.workers})"


class SerialBackend(WorkerBackend):
    """Run each task inline in the calling thread.

    Tasks cannot be interrupted; the dispatcher marks a task that ran longer
    than its timeout as timed out once it returns.
    """

    name = "serial"

    def submit(self, fn, value) -> Future:
        future: Future = Future()
        future.set_running_or_notify_cancel()
        future.set_result(execute_task(fn, value, self.capture_logs))
        return future


class ThreadBackend(WorkerBackend):
    """One daemon thread per task; timed-out threads are abandoned.

    Threads cannot be stopped, so a timed-out task keeps running after the
    dispatcher hands its slot to the next task. After a timeout more than
    ``workers`` tasks may therefore be executing at once. Use the process
    back-end when the worker bound must hold strictly.
    """

    name = "thread"

    def __init__(self, workers: int = 4, capture_logs: bool = True):
        super().__init__(workers, capture_logs)
        self._counter = 0

    def submit(self, fn, value) -> Future:
        future: Future = Future()
        future.set_running_or_notify_cancel()

        def run():
            _resolve(future, execute_task(fn, value, self.capture_logs))

        self._counter += 1
        thread = threading.Thread(target=run, name=f"genoscale-worker-{self._counter}", daemon=True)
        thread.start()
        return future


def _process_entry(conn, fn, value, capture_logs) -> None:
    payload = execute_task(fn, value, capture_logs)
    try:
        conn.send(payload)
    except Exception as e:
        # Result could not be pickled back to the parent.
        conn.send(TaskPayload.from_exception(e, elapsed=payload.elapsed, log=payload.log))
    finally:
        conn.close()


class ProcessBackend(WorkerBackend):
    """One process per task; timed-out processes are terminated.

    ``fn``, its input and its result must be picklable.
    """

    name = "process"

    def __init__(self, workers: int = 4, capture_logs: bool = True, start_method: str | None = None):
        super().__init__(workers, capture_logs)
        self._ctx = mp.get_context(start_method)
        self._processes: dict[Future, Any] = {}
        self._lock = threading.Lock()

    def submit(self, fn, value) -> Future:
        future: Future = Future()
        future.set_running_or_notify_cancel()

        parent_conn, child_conn = self._ctx.Pipe(duplex=False)
        process = self._ctx.Process(
            target=_process_entry,
            args=(child_conn, fn, value, self.capture_logs),
            daemon=True,
        )
        start = time.perf_counter()
        try:
            process.start()
        except Exception:
            parent_conn.close()
            raise
        finally:
            child_conn.close()

        with self._lock:
            self._processes[future] = process

        def collect():
            try:
                payload = parent_conn.recv()
            except (EOFError, OSError):
                process.join()
                payload = TaskPayload(
                    ok=False,
                    error_type="WorkerLost",
                    message=f"Worker process exited with code {process.exitcode}",
                    elapsed=time.perf_counter() - start,
                )
            finally:
                parent_conn.close()
            process.join()
            with self._lock:
                self._processes.pop(future, None)
            _resolve(future, payload)

        threading.Thread(target=collect, name=f"genoscale-collect-{process.pid}", daemon=True).start()
        return future

    def release(self, future: Future) -> None:
        with self._lock:
            process = self._processes.pop(future, None)
        if process is not None and process.is_alive():
            logger.debug(f"Terminating worker process {process.pid}")
            process.terminate()

    def shutdown(self) -> None:
        with self._lock:
            processes = list(self._processes.values())
            self._processes.clear()
        for process in processes:
            if process.is_alive():
                process.terminate()
            process.join(timeout=1)


class DaskBackend(WorkerBackend):
    """Submit tasks to a ``dask.distributed`` cluster.

    Uses ``client`` when given, otherwise connects to ``address`` or starts a
    local cluster with ``workers`` single-threaded workers.
    """

    name = "dask"

    def __init__(self,
                 workers: int = 4,
                 capture_logs: bool = True,
                 client: Any = None,
                 address: str | None = None):
        super().__init__(workers, capture_logs)
        try:
            from dask.distributed import Client
        except ImportError as e:
            raise InvalidConfiguration(
                "The dask backend needs dask[distributed]; install genoscale[dask]",
                config_key="backend", value="dask",
            ) from e

        self._owns_client = client is None
        if client is not None:
            self.client = client
        elif address:
            self.client = Client(address)
        else:
            self.client = Client(n_workers=workers, threads_per_worker=1,
                                 processes=True, dashboard_address=None)
        self._futures: dict[Future, Any] = {}
        logger.info(f"Dask backend using scheduler {self.client.scheduler.address}")

    def submit(self, fn, value) -> Future:
        future: Future = Future()
        future.set_running_or_notify_cancel()
        dask_future = self.client.submit(execute_task, fn, value, self.capture_logs, pure=False)
        self._futures[future] = dask_future

        def transfer(done):
            if done.status == "finished":
                _resolve(future, done.result())
            elif done.status == "error":
                _resolve(future, TaskPayload.from_exception(done.exception()))

        dask_future.add_done_callback(transfer)
        return future

    def release(self, future: Future) -> None:
        dask_future = self._futures.pop(future, None)
        if dask_future is not None:
            dask_future.cancel()

    def shutdown(self) -> None:
        self._futures.clear()
        if self._owns_client:
            self.client.close()


_BACKENDS = {
    SerialBackend.name: SerialBackend,
    ThreadBackend.name: ThreadBackend,
    ProcessBackend.name: ProcessBackend,
    DaskBackend.name: DaskBackend,
}


def get_backend(name: str, workers: int = 4, capture_logs: bool = True, **kwargs: Any) -> WorkerBackend:
    """Build a back-end by name (serial, thread, process, dask)."""
    backend_cls = _BACKENDS.get(name.lower())
    if backend_cls is None:
        raise InvalidConfiguration(
            f"Unknown backend '{name}', expected one of {sorted(_BACKENDS)}",
            config_key="backend", value=name,
        )
    return backend_cls(workers=workers, capture_logs=capture_logs, **kwargs)
