"""
Structured error types for the job store.

Every error raised by the store derives from ``JobStoreError`` and carries a
category, a retryable flag, structured context (job key, trigger key,
scheduler instance) and the chained cause.  Callers decide retry policy;
the store itself never retries.

Manifesto:
    - **Typed Error Hierarchy:** One class per failure the caller must tell apart
    - **Explicit Retry Semantics:** Each error knows if it's retryable
    - **Rich Context:** Errors carry job/trigger keys for logging
    - **Error Chaining:** Preserve underlying storage exceptions as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                       JobStoreError                              │
        │  (category, retryable, context, cause)                           │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ObjectAlreadyExistsError    DanglingReferenceError              │
        │  (DUPLICATE_KEY)             (REFERENCE)                         │
        │                                                                  │
        │  JobPersistenceError         SchedulerConfigError                │
        │  (STORAGE)                   (CONFIG)                            │
        │                                                                  │
        │  ScheduleError               OperationCancelledError             │
        │  (SCHEDULE)                  (CANCELLED)                         │
        └─────────────────────────────────────────────────────────────────┘

Tags:
    error-handling, exception-hierarchy, job-store, persistence
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    DUPLICATE_KEY = "DUPLICATE_KEY"      # store without replace on an existing key
    REFERENCE = "REFERENCE"              # trigger points at a missing job
    STORAGE = "STORAGE"                  # backing store unavailable
    CONFIG = "CONFIG"                    # startup / settings failure
    SCHEDULE = "SCHEDULE"                # bad schedule payload
    CANCELLED = "CANCELLED"              # caller cancelled the operation
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """Structured metadata attached to a ``JobStoreError``."""

    scheduler_name: str | None = None
    job_key: str | None = None
    trigger_key: str | None = None
    calendar_name: str | None = None
    operation: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["scheduler_name", "job_key", "trigger_key", "calendar_name", "operation"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class JobStoreError(Exception):
    """
    Base exception for all job store errors.

    Subclasses set ``default_category`` and ``default_retryable``.

    Examples:
        >>> error = JobStoreError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.with_context(trigger_key="nightly/reports").context.trigger_key
        'nightly/reports'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> JobStoreError:
        """
        Add context to this error (fluent API).

        Usage:
            raise ObjectAlreadyExistsError("exists").with_context(job_key="a/b")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CATALOG ERRORS
# =============================================================================


class ObjectAlreadyExistsError(JobStoreError):
    """A job, trigger or calendar with the same key is already stored."""

    default_category = ErrorCategory.DUPLICATE_KEY

    def __init__(self, kind: str, key: str, message: str | None = None):
        self.kind = kind
        self.key = key
        super().__init__(
            message
            or f"Unable to store {kind} '{key}': one already exists with this identification."
        )


class DanglingReferenceError(JobStoreError):
    """A trigger references a job that does not exist."""

    default_category = ErrorCategory.REFERENCE

    def __init__(self, trigger_key: str, job_key: str):
        self.trigger_key = trigger_key
        self.job_key = job_key
        super().__init__(
            f"The job ({job_key}) referenced by the trigger ({trigger_key}) does not exist."
        )


# =============================================================================
# STORAGE / CONFIGURATION ERRORS
# =============================================================================


class JobPersistenceError(JobStoreError):
    """
    The backing store could not be reached or timed out.

    Surfaced to the caller unchanged in meaning; retry policy belongs to the
    caller or to the storage layer.
    """

    default_category = ErrorCategory.STORAGE
    default_retryable = True


class SchedulerConfigError(JobStoreError):
    """
    Startup or configuration failure.

    Raised when recovery fails in ``scheduler_started``; fatal for the
    scheduler instance.
    """

    default_category = ErrorCategory.CONFIG


class ScheduleError(JobStoreError):
    """A schedule payload is malformed or has no registered capability."""

    default_category = ErrorCategory.SCHEDULE


class OperationCancelledError(JobStoreError):
    """The caller's cancellation signal was set; the transaction was rolled back."""

    default_category = ErrorCategory.CANCELLED


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, JobStoreError):
        return error.retryable
    return False


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "JobStoreError",
    "ObjectAlreadyExistsError",
    "DanglingReferenceError",
    "JobPersistenceError",
    "SchedulerConfigError",
    "ScheduleError",
    "OperationCancelledError",
    "is_retryable",
]
