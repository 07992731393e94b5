"""
Exception hierarchy for GenoScale with error codes and structured details.
"""

from typing import Any


# =============================================================================
# Base
# =============================================================================


class GenoScaleException(Exception):
    """Base exception for all GenoScale-related errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "GENOSCALE_ERROR",
        details: dict | None = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serializable view used in logs and reports."""
        payload: dict[str, Any] = {"code": self.error_code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


# =============================================================================
# Chunked processing
# =============================================================================


class SourceUnavailable(GenoScaleException):
    """Raised when a source cannot be located or opened."""

    def __init__(self, message: str, source: str | None = None):
        details = {"source": source} if source else {}
        super().__init__(message, "SOURCE_UNAVAILABLE", details)
        self.source = source


class DecodeError(GenoScaleException):
    """Raised when source bytes cannot be parsed into records."""

    def __init__(
        self,
        message: str,
        source: str | None = None,
        chunk_index: int | None = None,
    ):
        details: dict[str, Any] = {}
        if source:
            details["source"] = source
        if chunk_index is not None:
            details["chunk_index"] = chunk_index
        super().__init__(message, "DECODE_ERROR", details)
        self.source = source
        self.chunk_index = chunk_index


class InvalidConfiguration(GenoScaleException):
    """Raised when configuration values are invalid."""

    def __init__(self, message: str, config_key: str | None = None, value: Any = None):
        details: dict[str, Any] = {"config_key": config_key} if config_key else {}
        if config_key and value is not None:
            details["value"] = value
        super().__init__(message, "INVALID_CONFIGURATION", details)
        self.config_key = config_key


# =============================================================================
# Dispatch
# =============================================================================


class TaskFailure(GenoScaleException):
    """A task raised while running on a worker."""

    def __init__(
        self,
        message: str,
        index: int | None = None,
        error_type: str | None = None,
        trace: str | None = None,
    ):
        details: dict[str, Any] = {}
        if index is not None:
            details["index"] = index
        if error_type:
            details["error_type"] = error_type
        super().__init__(message, "TASK_FAILURE", details)
        self.index = index
        self.error_type = error_type
        self.trace = trace

    def __str__(self) -> str:
        if self.error_type:
            return f"{self.error_type}: {self.message}"
        return self.message


class TaskTimeout(TaskFailure):
    """A task did not finish within its time budget."""

    def __init__(self, message: str, index: int | None = None, timeout: float | None = None):
        super().__init__(message, index=index, error_type="Timeout")
        self.error_code = "TASK_TIMEOUT"
        self.timeout = timeout
        if timeout is not None:
            self.details["timeout"] = timeout


class DispatchError(GenoScaleException):
    """Raised on request when a dispatch round left failed positions."""

    def __init__(self, message: str, failures: dict[int, str] | None = None):
        super().__init__(message, "DISPATCH_ERROR", {"failures": failures or {}})
        self.failures = failures or {}


class InvalidTransition(GenoScaleException):
    """Raised when a task state change violates the task life cycle."""

    def __init__(self, message: str, from_state: str | None = None, to_state: str | None = None):
        details = {}
        if from_state:
            details["from_state"] = from_state
        if to_state:
            details["to_state"] = to_state
        super().__init__(message, "INVALID_TRANSITION", details)
