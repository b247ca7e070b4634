"""Retry backoff for failed jobs.

Delay = min(base_delay * 2 ** clamp(attempt, 1, max_exponent), max_delay)

No jitter: ``run_after`` is a pure function of the attempt number.

Example:
    >>> from studio_jobs.queue.backoff import compute_backoff_delay
    >>> [compute_backoff_delay(n).total_seconds() for n in (1, 2, 3, 8)]
    [10.0, 20.0, 40.0, 900.0]
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta


@dataclass(frozen=True)
class ExponentialBackoff:
    """Capped exponential backoff keyed by the job's new attempt count.

    Attributes:
        base_delay: Seconds multiplied by ``2 ** attempt``
        max_delay: Upper bound on the delay in seconds (15 minutes)
        max_exponent: Attempt numbers above this are clamped
    """

    base_delay: float = 5.0
    max_delay: float = 900.0
    max_exponent: int = 10

    def next_delay(self, attempt: int) -> float:
        exponent = max(1, min(attempt, self.max_exponent))
        return min(self.base_delay * (2**exponent), self.max_delay)

    def delay_for(self, attempt: int) -> timedelta:
        return timedelta(seconds=self.next_delay(attempt))


DEFAULT_BACKOFF = ExponentialBackoff()


def compute_backoff_delay(attempt: int) -> timedelta:
    """Backoff used by :meth:`JobStore.mark_failed` for the given attempt."""
    return DEFAULT_BACKOFF.delay_for(attempt)
