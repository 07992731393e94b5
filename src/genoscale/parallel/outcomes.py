"""Per-task outcomes and the ordered result set of a dispatch round."""

from collections.abc import Sequence
from dataclasses import dataclass
from dataclasses import field
from enum import Enum
from typing import Any

import pandas as pd

from ..core.exceptions import DispatchError
from ..core.exceptions import InvalidTransition
from ..core.exceptions import TaskFailure
from ..core.exceptions import TaskTimeout


class TaskState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskState.SUCCEEDED, TaskState.FAILED, TaskState.TIMED_OUT)


_TRANSITIONS = {
    TaskState.PENDING: {TaskState.RUNNING},
    TaskState.RUNNING: {TaskState.SUCCEEDED, TaskState.FAILED, TaskState.TIMED_OUT},
    TaskState.SUCCEEDED: set(),
    TaskState.FAILED: set(),
    TaskState.TIMED_OUT: set(),
}


@dataclass
class Outcome:
    """Result of one task, matched to its input by ``index``."""

    index: int
    state: TaskState = TaskState.PENDING
    value: Any = None
    error_type: str | None = None
    message: str | None = None
    traceback: str | None = None
    elapsed: float = 0.0
    attempts: int = 0
    log: list[tuple[str, str]] = field(default_factory=list)

    def transition(self, new_state: TaskState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise InvalidTransition(
                f"Task {self.index} cannot move from {self.state.value} to {new_state.value}",
                from_state=self.state.value, to_state=new_state.value,
            )
        self.state = new_state

    @property
    def ok(self) -> bool:
        return self.state is TaskState.SUCCEEDED

    @property
    def failed(self) -> bool:
        return self.state in (TaskState.FAILED, TaskState.TIMED_OUT)

    @classmethod
    def succeeded(cls, index: int, value: Any, elapsed: float = 0.0) -> "Outcome":
        return cls(index=index, state=TaskState.SUCCEEDED, value=value, elapsed=elapsed, attempts=1)

    @classmethod
    def failure(cls, index: int, error_type: str, message: str,
                traceback: str | None = None, elapsed: float = 0.0) -> "Outcome":
        return cls(index=index, state=TaskState.FAILED, error_type=error_type,
                   message=message, traceback=traceback, elapsed=elapsed, attempts=1)

    def to_exception(self) -> TaskFailure | None:
        """Rebuild the captured failure as an exception, or None on success."""
        if self.state is TaskState.TIMED_OUT:
            return TaskTimeout(self.message or "Task timed out", index=self.index)
        if self.state is TaskState.FAILED:
            return TaskFailure(self.message or "", index=self.index,
                               error_type=self.error_type, trace=self.traceback)
        return None

    def __repr__(self) -> str:
        if self.ok:
            return f"Outcome({self.index}, succeeded, value={self.value!r})"
        if self.failed:
            return f"Outcome({self.index}, {self.state.value}, {self.error_type}: {self.message})"
        return f"Outcome({self.index}, {self.state.value})"


class ResultSet(Sequence):
    """Outcomes of a dispatch round, in input order."""

    def __init__(self, outcomes: list[Outcome] | None = None):
        self._outcomes = list(outcomes or [])

    def __getitem__(self, index):
        return self._outcomes[index]

    def __len__(self) -> int:
        return len(self._outcomes)

    def __repr__(self) -> str:
        return f"ResultSet({self.summary()})"

    def ok(self) -> list[bool]:
        """Per-position success flags."""
        return [outcome.ok for outcome in self._outcomes]

    @property
    def all_ok(self) -> bool:
        return all(outcome.ok for outcome in self._outcomes)

    def values(self, default: Any = None) -> list[Any]:
        """Values in input order; failed positions hold ``default``."""
        return [outcome.value if outcome.ok else default for outcome in self._outcomes]

    def failed_indices(self) -> list[int]:
        return [outcome.index for outcome in self._outcomes if not outcome.ok]

    def errors(self) -> dict[int, Outcome]:
        return {outcome.index: outcome for outcome in self._outcomes if outcome.failed}

    def summary(self) -> dict[str, int]:
        counts = {state.value: 0 for state in TaskState}
        for outcome in self._outcomes:
            counts[outcome.state.value] += 1
        return counts

    def raise_for_failures(self) -> None:
        """Raise DispatchError listing every failed position, if any."""
        errors = self.errors()
        if errors:
            failures = {i: f"{o.error_type}: {o.message}" for i, o in errors.items()}
            raise DispatchError(f"{len(errors)} of {len(self)} tasks failed", failures=failures)

    def to_frame(self) -> pd.DataFrame:
        """Tabular view, one row per task."""
        return pd.DataFrame(
            [
                {
                    "index": o.index,
                    "state": o.state.value,
                    "value": o.value,
                    "error_type": o.error_type,
                    "message": o.message,
                    "elapsed": o.elapsed,
                    "attempts": o.attempts,
                }
                for o in self._outcomes
            ],
            columns=["index", "state", "value", "error_type", "message", "elapsed", "attempts"],
        )
