from dataclasses import dataclass

from bulk_worker.config.settings import Settings


@dataclass(frozen=True)
class RetryPolicy:
    """Retry and backoff limits shared by the classifier, worker and scheduler.

    Delays are in milliseconds. ``infrastructure_max_attempts`` bounds the
    automatic recoveries of jobs paused for infrastructure failures;
    ``max_attempts`` bounds everything else.
    """

    max_attempts: int = 3
    initial_delay_ms: int = 30000
    max_delay_ms: int = 300000
    multiplier: float = 2.0
    infrastructure_max_attempts: int = 3

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            initial_delay_ms=settings.retry_initial_delay_ms,
            max_delay_ms=settings.retry_max_delay_ms,
            multiplier=settings.retry_multiplier,
            infrastructure_max_attempts=settings.retry_infrastructure_max_attempts,
        )

    def backoff_ms(self, retry_count: int) -> int:
        """Exponential backoff for the given (post-increment) retry count.

        ``initial_delay_ms`` for the first attempt, then
        ``initial * multiplier ** (retry_count - 1)`` capped at ``max_delay_ms``.
        """
        if retry_count <= 1:
            return min(self.initial_delay_ms, self.max_delay_ms)
        try:
            delay = self.initial_delay_ms * self.multiplier ** (retry_count - 1)
        except OverflowError:
            return self.max_delay_ms if self.initial_delay_ms > 0 else 0
        return int(min(delay, self.max_delay_ms))
