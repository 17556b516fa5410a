"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines all custom exceptions for the queue processor runtime.

- Provides clear exception hierarchy
- Separates per-worker failures from initialization failures
- Supports error categorization for log tagging
- Includes context for debugging

============================================================
EXCEPTION HIERARCHY
============================================================
ProcessorException (base)
├── ConfigurationError
├── RegistryError
├── StateTransitionError
└── OrchestrationError
    ├── StartupError
    │   └── ModuleLoadError
    ├── ShutdownError
    └── WorkerError
        ├── WorkerStartError
        └── WorkerRuntimeError

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels for log tagging."""

    LOW = "low"
    """Minor issue, informational."""

    MEDIUM = "medium"
    """Moderate issue, requires attention."""

    HIGH = "high"
    """Serious issue, the runtime may not be serving jobs."""

    CRITICAL = "critical"
    """Critical issue, requires immediate action."""


# ============================================================
# ERROR CLASSIFICATION
# ============================================================

class ErrorClassification(Enum):
    """Classification of error recoverability."""

    RECOVERABLE = "recoverable"
    """Error is isolated, the runtime keeps going."""

    TRANSIENT = "transient"
    """Temporary error, retry may succeed."""

    NON_RECOVERABLE = "non_recoverable"
    """Permanent error, requires intervention."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class ProcessorException(Exception):
    """
    Base exception for all queue processor errors.

    All exceptions carry:
    - severity: for log tagging
    - context: for debugging
    - recoverable: for error handling decisions
    - timestamp: when the error occurred
    """

    default_severity: Severity = Severity.MEDIUM
    default_recoverable: bool = True
    default_classification: ErrorClassification = ErrorClassification.RECOVERABLE
    tag: str = "processor"

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        recoverable: Optional[bool] = None,
        classification: Optional[ErrorClassification] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.recoverable = recoverable if recoverable is not None else self.default_recoverable
        self.classification = classification or self.default_classification
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause is not None:
            self.__cause__ = cause
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging."""
        return {
            "type": type(self).__name__,
            "tag": self.tag,
            "message": self.message,
            "severity": self.severity.value,
            "recoverable": self.recoverable,
            "classification": self.classification.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }

    def to_log_format(self) -> str:
        """Format exception as a single tagged log line."""
        line = f"[{self.tag}] [{self.severity.value.upper()}] {type(self).__name__}: {self.message}"
        ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
        if ctx_str:
            line += f" | {ctx_str}"
        return line


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(ProcessorException):
    """Error in configuration."""

    default_severity = Severity.HIGH
    default_recoverable = False
    default_classification = ErrorClassification.NON_RECOVERABLE
    tag = "config"

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        actual_value: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if config_key:
            context["config_key"] = config_key
        if actual_value is not None:
            context["actual_value"] = str(actual_value)[:100]

        super().__init__(message, context=context, **kwargs)


# ============================================================
# REGISTRY ERRORS
# ============================================================

class RegistryError(ProcessorException):
    """Invalid use of the worker registry."""

    default_severity = Severity.HIGH
    default_recoverable = False
    default_classification = ErrorClassification.NON_RECOVERABLE
    tag = "registry"

    def __init__(
        self,
        message: str,
        worker_name: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if worker_name:
            context["worker"] = worker_name

        super().__init__(message, context=context, **kwargs)


# ============================================================
# STATE ERRORS
# ============================================================

class StateTransitionError(ProcessorException):
    """Invalid lifecycle state transition."""

    default_severity = Severity.HIGH
    default_recoverable = False
    default_classification = ErrorClassification.NON_RECOVERABLE
    tag = "lifecycle"

    def __init__(
        self,
        message: str,
        from_state: Optional[str] = None,
        to_state: Optional[str] = None,
        reason: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if from_state:
            context["from_state"] = from_state
        if to_state:
            context["to_state"] = to_state
        if reason:
            context["reason"] = reason

        super().__init__(message, context=context, **kwargs)


# ============================================================
# ORCHESTRATION ERRORS
# ============================================================

class OrchestrationError(ProcessorException):
    """Base class for orchestration-related errors."""

    default_severity = Severity.HIGH
    default_recoverable = False
    default_classification = ErrorClassification.NON_RECOVERABLE


class StartupError(OrchestrationError):
    """Runtime initialization failed before any worker was started."""

    tag = "startup"

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if stage:
            context["stage"] = stage

        super().__init__(message, context=context, **kwargs)


class ModuleLoadError(StartupError):
    """
    A worker-definition loader failed.

    Remaining loaders are not executed.
    """

    tag = "module-load"

    def __init__(
        self,
        message: str,
        loader: Optional[str] = None,
        index: Optional[int] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if loader:
            context["loader"] = loader
        if index is not None:
            context["index"] = index

        super().__init__(message, stage="load_modules", context=context, **kwargs)


class ShutdownError(OrchestrationError):
    """Stopping the worker set failed."""

    default_severity = Severity.MEDIUM
    default_recoverable = True
    default_classification = ErrorClassification.RECOVERABLE
    tag = "shutdown"

    def __init__(
        self,
        message: str,
        workers: Optional[list] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if workers:
            context["workers"] = ",".join(workers)

        super().__init__(message, context=context, **kwargs)


class WorkerError(OrchestrationError):
    """Base class for errors isolated to a single worker."""

    default_severity = Severity.MEDIUM
    default_recoverable = True
    default_classification = ErrorClassification.RECOVERABLE
    tag = "worker"

    def __init__(
        self,
        message: str,
        worker_name: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if worker_name:
            context["worker"] = worker_name

        self.worker_name = worker_name
        super().__init__(message, context=context, **kwargs)


class WorkerStartError(WorkerError):
    """A worker's run operation failed at start."""

    tag = "worker-start"


class WorkerRuntimeError(WorkerError):
    """A worker reported an error after it started."""

    tag = "worker-runtime"

    def __init__(
        self,
        message: str,
        worker_name: Optional[str] = None,
        job_id: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if job_id:
            context["job_id"] = job_id

        super().__init__(message, worker_name=worker_name, context=context, **kwargs)


# ============================================================
# EXCEPTION UTILITIES
# ============================================================

def classify_exception(exc: BaseException) -> ErrorClassification:
    """Classify an exception for error handling."""
    if isinstance(exc, ProcessorException):
        return exc.classification

    if isinstance(exc, (ConnectionError, TimeoutError, OSError)):
        return ErrorClassification.TRANSIENT

    if isinstance(exc, (ValueError, TypeError, KeyError)):
        return ErrorClassification.RECOVERABLE

    if isinstance(exc, (SystemExit, KeyboardInterrupt, MemoryError)):
        return ErrorClassification.NON_RECOVERABLE

    return ErrorClassification.RECOVERABLE


def wrap_exception(
    exc: BaseException,
    wrapper_class: type = ProcessorException,
    message: Optional[str] = None,
    **kwargs,
) -> ProcessorException:
    """Wrap a standard exception in a ProcessorException (no-op if already wrapped)."""
    if isinstance(exc, wrapper_class):
        return exc
    msg = message or f"{type(exc).__name__}: {exc}"
    return wrapper_class(msg, cause=exc, **kwargs)


__all__ = [
    "Severity",
    "ErrorClassification",
    "ProcessorException",
    "ConfigurationError",
    "RegistryError",
    "StateTransitionError",
    "OrchestrationError",
    "StartupError",
    "ModuleLoadError",
    "ShutdownError",
    "WorkerError",
    "WorkerStartError",
    "WorkerRuntimeError",
    "classify_exception",
    "wrap_exception",
]
