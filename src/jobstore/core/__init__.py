"""
Core primitives for the job store: errors, logging, settings, timestamps
and the SQLAlchemy persistence layer (``jobstore.core.orm``).
"""

from jobstore.core.errors import (
    DanglingReferenceError,
    ErrorCategory,
    ErrorContext,
    JobPersistenceError,
    JobStoreError,
    ObjectAlreadyExistsError,
    OperationCancelledError,
    ScheduleError,
    SchedulerConfigError,
    is_retryable,
)
from jobstore.core.logging import LogContext, configure_logging, get_logger
from jobstore.core.timestamps import from_ticks, generate_ulid, to_ticks, utc_now

__all__ = [
    # errors
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
    # logging
    "configure_logging",
    "get_logger",
    "LogContext",
    # timestamps
    "utc_now",
    "generate_ulid",
    "to_ticks",
    "from_ticks",
]
