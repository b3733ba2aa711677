from enum import Enum


class ErrorCategory(str, Enum):
    """Closed set of failure categories collaborators attach to their errors."""

    TIMEOUT = "timeout"
    CONNECTIVITY = "connectivity"
    RESOURCE = "resource"
    VALIDATION = "validation"


class ProcessingError(Exception):
    """Base exception for all job processing errors."""

    category: ErrorCategory | None = None


class TransientError(ProcessingError):
    """Raised for timeouts, lock contention and other conditions that clear on their own."""

    category = ErrorCategory.TIMEOUT


class ConnectivityError(ProcessingError):
    """Raised when the record store or another dependency cannot be reached."""

    category = ErrorCategory.CONNECTIVITY


class ResourceError(ProcessingError):
    """Raised for missing files, permissions, exhausted disk and similar."""

    category = ErrorCategory.RESOURCE


class RowSourceError(ResourceError):
    """Raised when a job's CSV cannot be opened or read."""


class MalformedSourceError(ProcessingError):
    """Raised when a CSV is empty or lacks required columns."""

    category = ErrorCategory.VALIDATION


class JobNotFoundError(ProcessingError):
    """Raised when a job id does not exist."""

    category = ErrorCategory.VALIDATION
