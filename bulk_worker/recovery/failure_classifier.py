import errno
import re
from enum import Enum

import psycopg
from psycopg import errors as pg_errors
from psycopg_pool import PoolTimeout

from bulk_worker.config.retry_policy import RetryPolicy
from bulk_worker.processing.exceptions import ErrorCategory, ProcessingError


class FailureType(str, Enum):
    TRANSIENT = "TRANSIENT"
    INFRASTRUCTURE = "INFRASTRUCTURE"
    PERMANENT = "PERMANENT"

    @classmethod
    def parse(cls, raw: str | None) -> "FailureType | None":
        if not raw:
            return None
        try:
            return cls(raw)
        except ValueError:
            return None


_CATEGORY_TYPES: dict[ErrorCategory, FailureType] = {
    ErrorCategory.TIMEOUT: FailureType.TRANSIENT,
    ErrorCategory.CONNECTIVITY: FailureType.INFRASTRUCTURE,
    ErrorCategory.RESOURCE: FailureType.INFRASTRUCTURE,
    ErrorCategory.VALIDATION: FailureType.PERMANENT,
}

# Checked in order: the first matching class wins.
_EXCEPTION_TYPES: tuple[tuple[type[BaseException], FailureType], ...] = (
    (pg_errors.TransactionRollback, FailureType.TRANSIENT),
    (pg_errors.LockNotAvailable, FailureType.TRANSIENT),
    (pg_errors.QueryCanceled, FailureType.TRANSIENT),
    (PoolTimeout, FailureType.TRANSIENT),
    (TimeoutError, FailureType.TRANSIENT),
    (psycopg.OperationalError, FailureType.INFRASTRUCTURE),
    (psycopg.InterfaceError, FailureType.INFRASTRUCTURE),
    (ConnectionError, FailureType.INFRASTRUCTURE),
    (FileNotFoundError, FailureType.INFRASTRUCTURE),
    (PermissionError, FailureType.INFRASTRUCTURE),
    (MemoryError, FailureType.INFRASTRUCTURE),
)

_RESOURCE_ERRNOS = frozenset({errno.ENOSPC, errno.EDQUOT, errno.EROFS, errno.EMFILE})

_TRANSIENT_PATTERN = re.compile(
    r"timeout|timed out|deadlock|lock wait|could not obtain lock|temporar|"
    r"connection reset|try again|unavailable",
    re.IGNORECASE,
)
_INFRASTRUCTURE_PATTERN = re.compile(
    r"database|connection refused|could not connect|file not found|"
    r"no such file|permission denied|disk full|no space left|out of memory",
    re.IGNORECASE,
)


class FailureClassifier:
    """Maps a job-level error to a FailureType and answers retry questions.

    Order of evidence: the category carried by our own typed errors, then
    well-known library exception classes, then message heuristics. Anything
    left is PERMANENT so unknown failures are never retried forever.
    """

    def __init__(self, policy: RetryPolicy) -> None:
        self._policy = policy

    def classify(self, exc: BaseException, message: str | None = None) -> FailureType:
        if isinstance(exc, ProcessingError) and exc.category is not None:
            return _CATEGORY_TYPES[exc.category]

        for exc_type, failure_type in _EXCEPTION_TYPES:
            if isinstance(exc, exc_type):
                return failure_type

        if isinstance(exc, OSError) and exc.errno in _RESOURCE_ERRNOS:
            return FailureType.INFRASTRUCTURE

        text = message if message is not None else str(exc)
        if text:
            if _TRANSIENT_PATTERN.search(text):
                return FailureType.TRANSIENT
            if _INFRASTRUCTURE_PATTERN.search(text):
                return FailureType.INFRASTRUCTURE

        return FailureType.PERMANENT

    def should_retry(
        self,
        failure_type: FailureType,
        retry_count: int,
        max_attempts: int | None = None,
    ) -> bool:
        limit = self._policy.max_attempts if max_attempts is None else max_attempts
        if failure_type is FailureType.TRANSIENT:
            return retry_count < limit
        if failure_type is FailureType.INFRASTRUCTURE:
            return retry_count < min(self._policy.infrastructure_max_attempts, limit)
        return False

    def retry_delay_ms(self, failure_type: FailureType, retry_count: int) -> int:
        """Delay before the next attempt of a job that has been retried ``retry_count`` times."""
        if failure_type is FailureType.TRANSIENT:
            return self._policy.backoff_ms(retry_count + 1)
        if failure_type is FailureType.INFRASTRUCTURE:
            # Linear: 5s, 10s, 15s, ...
            return min(5000 * (retry_count + 1), self._policy.max_delay_ms)
        return 0
