"""Retry budget and delay schedule for the generation gateway."""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_DELAY_SECONDS = 2.0


@dataclass(slots=True, frozen=True)
class BackoffPolicy:
    """Pure exponential backoff: delay before retry ``k`` is ``initial * 2**(k-1)``.

    With the defaults that is 2s, 4s, 8s for retries 1..3. No jitter and no
    cap other than the retry budget.
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    initial_delay_seconds: float = DEFAULT_INITIAL_DELAY_SECONDS

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0.")
        if self.initial_delay_seconds < 0:
            raise ValueError("initial_delay_seconds must be >= 0.")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def should_retry(self, *, retryable: bool, retries_done: int) -> bool:
        return retryable and retries_done < self.max_retries

    def delay_for(self, retry_number: int) -> float:
        """Seconds to wait before retry ``retry_number`` (1-based)."""

        if retry_number < 1:
            raise ValueError(f"retry_number must be >= 1, got {retry_number}.")
        return self.initial_delay_seconds * (2 ** (retry_number - 1))

    def schedule(self) -> tuple[float, ...]:
        return tuple(self.delay_for(k) for k in range(1, self.max_retries + 1))
