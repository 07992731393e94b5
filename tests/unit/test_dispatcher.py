"""
Unit Tests for the parallel task dispatcher
"""

import math
import threading
import time

import pytest

from genoscale.core.exceptions import InvalidConfiguration
from genoscale.core.logging_config import ThresholdLogSink
from genoscale.core.logging_config import get_task_logger
from genoscale.core.settings import DispatchSettings
from genoscale.parallel.backends import SerialBackend
from genoscale.parallel.backends import ThreadBackend
from genoscale.parallel.dispatcher import Dispatcher
from genoscale.parallel.dispatcher import dispatch
from genoscale.parallel.outcomes import Outcome
from genoscale.parallel.outcomes import ResultSet
from genoscale.parallel.outcomes import TaskState


class CallCounter:
    """Thread-safe record of the inputs a task was called with."""

    def __init__(self, fn=math.sqrt):
        self.fn = fn
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, value):
        with self._lock:
            self.calls.append(value)
        return self.fn(value)


class EventRecorder:
    """Callable log sink target."""

    def __init__(self):
        self.events = []
        self._lock = threading.Lock()

    def __call__(self, level, message, context):
        with self._lock:
            self.events.append((level, message, context.get("index")))

    def messages(self):
        return [(level, message) for level, message, _ in self.events]


@pytest.fixture
def thread_config():
    return DispatchSettings(workers=3, backend="thread")


@pytest.fixture
def serial_config():
    return DispatchSettings(workers=1, backend="serial")


class TestDispatch:
    """Tests for a single dispatch round"""

    def test_empty_inputs(self, thread_config):
        results = Dispatcher(thread_config).dispatch([], math.sqrt)
        assert isinstance(results, ResultSet)
        assert len(results) == 0

    @pytest.mark.parametrize("inputs", [[4], [1, 4, 9, 16, 25, 36, 49]])
    def test_one_outcome_per_input(self, thread_config, inputs):
        results = Dispatcher(thread_config).dispatch(inputs, math.sqrt)
        assert len(results) == len(inputs)
        assert [o.index for o in results] == list(range(len(inputs)))
        assert results.values() == [math.sqrt(x) for x in inputs]

    def test_failure_does_not_affect_siblings(self, thread_config):
        results = Dispatcher(thread_config).dispatch([1, "2", 3], math.sqrt)

        assert results.ok() == [True, False, True]
        assert results.values() == [1.0, None, math.sqrt(3)]
        failed = results[1]
        assert failed.state is TaskState.FAILED
        assert failed.error_type == "TypeError"
        assert failed.message
        assert "Traceback" in failed.traceback

    def test_results_keep_input_order(self, thread_config):
        def slow_first(x):
            time.sleep(0.2 if x == 0 else 0.0)
            return x

        results = Dispatcher(thread_config).dispatch(range(5), slow_first)
        assert results.values() == [0, 1, 2, 3, 4]

    def test_in_flight_bounded_by_workers(self):
        active = 0
        peak = 0
        lock = threading.Lock()

        def task(x):
            nonlocal active, peak
            with lock:
                active += 1
                peak = max(peak, active)
            time.sleep(0.05)
            with lock:
                active -= 1
            return x

        config = DispatchSettings(workers=2, backend="thread")
        results = Dispatcher(config).dispatch(range(8), task)
        assert results.all_ok
        assert peak <= 2

    def test_serial_backend(self, serial_config):
        results = Dispatcher(serial_config).dispatch([1, "2", 3], math.sqrt)
        assert results.ok() == [True, False, True]

    def test_process_backend(self):
        config = DispatchSettings(workers=2, backend="process")
        results = Dispatcher(config).dispatch([1, "2", 9], math.sqrt)
        assert results.ok() == [True, False, True]
        assert results[2].value == 3.0

    def test_shared_backend(self):
        backend = SerialBackend()
        dispatcher = Dispatcher(backend=backend)
        assert dispatcher.dispatch([4, 9], math.sqrt).values() == [2.0, 3.0]
        assert dispatcher.dispatch([16], math.sqrt).values() == [4.0]

    def test_per_round_config(self, serial_config):
        dispatcher = Dispatcher(serial_config)
        results = dispatcher.dispatch([1, 2], math.sqrt, config=DispatchSettings(workers=2, backend="thread"))
        assert results.all_ok

    def test_module_function(self):
        results = dispatch([1, "x"], math.sqrt, workers=2, backend="thread")
        assert results.ok() == [True, False]

    def test_attempts_counted(self, thread_config):
        results = Dispatcher(thread_config).dispatch([1, "2"], math.sqrt)
        assert [o.attempts for o in results] == [1, 1]


class TestTimeouts:
    """Tests for per-task time limits"""

    def test_thread_timeout(self):
        config = DispatchSettings(workers=3, backend="thread", timeout=0.5)
        start = time.monotonic()
        results = Dispatcher(config).dispatch([0.01, 2.0, 0.01], time.sleep)
        elapsed = time.monotonic() - start

        assert [o.state for o in results] == [TaskState.SUCCEEDED, TaskState.TIMED_OUT, TaskState.SUCCEEDED]
        assert results[1].error_type == "Timeout"
        assert results.failed_indices() == [1]
        assert elapsed < 1.8

    def test_timed_out_worker_slot_is_reused(self):
        config = DispatchSettings(workers=1, backend="thread", timeout=0.3)
        results = Dispatcher(config).dispatch([2.0, 0.01], time.sleep)
        assert [o.state for o in results] == [TaskState.TIMED_OUT, TaskState.SUCCEEDED]

    def test_abandoned_thread_keeps_running(self):
        second_started = threading.Event()
        first_saw_second = []

        def task(x):
            if x == "first":
                first_saw_second.append(second_started.wait(timeout=2.0))
            else:
                second_started.set()
            return x

        config = DispatchSettings(workers=1, backend="thread", timeout=0.3)
        results = Dispatcher(config).dispatch(["first", "second"], task)

        assert [o.state for o in results] == [TaskState.TIMED_OUT, TaskState.SUCCEEDED]
        deadline = time.monotonic() + 2.0
        while not first_saw_second and time.monotonic() < deadline:
            time.sleep(0.01)
        assert first_saw_second == [True]

    def test_serial_overrun_is_timed_out(self):
        config = DispatchSettings(workers=1, backend="serial", timeout=0.1)
        results = Dispatcher(config).dispatch([0.3, 0.0], time.sleep)
        assert [o.state for o in results] == [TaskState.TIMED_OUT, TaskState.SUCCEEDED]

    @pytest.mark.slow
    def test_process_timeout_terminates(self):
        config = DispatchSettings(workers=2, backend="process", timeout=1.0)
        results = Dispatcher(config).dispatch([0.01, 30], time.sleep)
        assert [o.state for o in results] == [TaskState.SUCCEEDED, TaskState.TIMED_OUT]


class TestResume:
    """Tests for re-running only failed positions"""

    def test_only_failed_positions_rerun(self, thread_config):
        dispatcher = Dispatcher(thread_config)
        first = dispatcher.dispatch([1, "2", 3], math.sqrt)

        counter = CallCounter()
        second = dispatcher.dispatch([1, 4, 3], counter, resume_from=first)

        assert counter.calls == [4]
        assert second.ok() == [True, True, True]
        assert second.values() == [1.0, 2.0, math.sqrt(3)]
        assert second[0] is first[0]
        assert second[1].attempts == 2

    def test_every_position_executed_exactly_once(self, thread_config):
        dispatcher = Dispatcher(thread_config)
        inputs = [1, "a", 9, "b", 16]
        first_counter = CallCounter()
        first = dispatcher.dispatch(inputs, first_counter)

        fixed = [1, 4, 9, 25, 16]
        second_counter = CallCounter()
        second = dispatcher.dispatch(fixed, second_counter, resume_from=first)

        assert sorted(map(str, first_counter.calls)) == sorted(map(str, inputs))
        assert sorted(second_counter.calls) == [4, 25]
        assert second.all_ok

    def test_nothing_to_resume(self, thread_config):
        dispatcher = Dispatcher(thread_config)
        first = dispatcher.dispatch([4, 9], math.sqrt)
        counter = CallCounter()
        second = dispatcher.dispatch([4, 9], counter, resume_from=first)
        assert counter.calls == []
        assert second.values() == [2.0, 3.0]

    def test_resumes_timed_out_positions(self):
        config = DispatchSettings(workers=2, backend="thread", timeout=0.3)
        dispatcher = Dispatcher(config)
        first = dispatcher.dispatch([0.01, 1.0], time.sleep)
        second = dispatcher.dispatch([0.01, 0.01], time.sleep, resume_from=first)
        assert first.ok() == [True, False]
        assert second.all_ok

    def test_failed_again_stays_failed(self, thread_config):
        dispatcher = Dispatcher(thread_config)
        first = dispatcher.dispatch(["x"], math.sqrt)
        second = dispatcher.dispatch(["x"], math.sqrt, resume_from=first)
        assert second[0].state is TaskState.FAILED
        assert second[0].attempts == 2

    def test_length_mismatch(self, thread_config):
        dispatcher = Dispatcher(thread_config)
        first = dispatcher.dispatch([1, 2], math.sqrt)
        with pytest.raises(InvalidConfiguration):
            dispatcher.dispatch([1, 2, 3], math.sqrt, resume_from=first)

    def test_resume_from_plain_list(self, serial_config):
        prior = [Outcome.succeeded(0, "kept"), Outcome.failure(1, "ValueError", "bad")]
        results = Dispatcher(serial_config).dispatch([0, 25], math.sqrt, resume_from=prior)
        assert results.values() == ["kept", 5.0]


class TestTaskLogging:
    """Tests for threshold-filtered forwarding of task logs"""

    @staticmethod
    def chatty(x):
        log = get_task_logger()
        log.debug(f"debug {x}")
        log.info(f"info {x}")
        log.warning(f"warn {x}")
        log.error(f"error {x}")
        return x

    def test_threshold_filters_task_logs(self, serial_config):
        recorder = EventRecorder()
        dispatcher = Dispatcher(serial_config, log_sink=ThresholdLogSink(recorder, threshold="WARN"))
        dispatcher.dispatch([1], self.chatty)

        task_events = [e for e in recorder.messages() if e[1].endswith(" 1")]
        assert task_events == [("WARN", "warn 1"), ("ERROR", "error 1")]

    def test_threshold_change_affects_later_rounds(self, serial_config):
        recorder = EventRecorder()
        dispatcher = Dispatcher(serial_config, log_sink=ThresholdLogSink(recorder, threshold="ERROR"))
        dispatcher.dispatch([1], self.chatty)
        dispatcher.set_log_threshold("DEBUG")
        dispatcher.dispatch([2], self.chatty)

        messages = [m for _, m in recorder.messages()]
        assert "error 1" in messages
        assert "info 1" not in messages
        assert "debug 2" in messages
        assert "info 2" in messages

    def test_events_carry_task_index(self, thread_config):
        recorder = EventRecorder()
        dispatcher = Dispatcher(thread_config, log_sink=ThresholdLogSink(recorder, threshold="ERROR"))
        dispatcher.dispatch([5, 6, 7], self.chatty)

        indices = {message: index for _, message, index in recorder.events}
        assert indices["error 5"] == 0
        assert indices["error 7"] == 2

    def test_task_failure_reported_at_error(self, serial_config):
        recorder = EventRecorder()
        dispatcher = Dispatcher(serial_config, log_sink=ThresholdLogSink(recorder, threshold="ERROR"))
        dispatcher.dispatch(["x"], math.sqrt)
        assert any(level == "ERROR" and message.startswith("TypeError") for level, message in recorder.messages())

    def test_threshold_applied_when_task_completes(self, serial_config):
        recorder = EventRecorder()
        dispatcher = Dispatcher(serial_config, log_sink=ThresholdLogSink(recorder, threshold="DEBUG"))

        def raise_threshold_midway(x):
            log = get_task_logger()
            log.info(f"before {x}")
            dispatcher.set_log_threshold("ERROR")
            log.error(f"after {x}")
            return x

        dispatcher.dispatch([1], raise_threshold_midway)

        messages = [m for _, m in recorder.messages()]
        assert "before 1" not in messages
        assert "after 1" in messages

    def test_log_threshold_from_config(self):
        dispatcher = Dispatcher(DispatchSettings(log_threshold="warning"))
        assert dispatcher.log_sink.threshold == "WARN"

    def test_logs_kept_on_outcome(self, serial_config):
        results = Dispatcher(serial_config).dispatch([3], self.chatty)
        assert ("DEBUG", "debug 3") in results[0].log
