"""
Retry policy with capped exponential backoff.

The policy is deterministic: the same attempt number always yields the same
interval. No jitter is applied; every consumer worker retrying
the same failure backs off on the same schedule.
"""

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded exponential backoff for failed message handling.

    Attributes:
        max_attempts: Total handler invocations allowed per message, including
            the first one. 0 and 1 both mean "never retry".
        initial_interval_ms: Delay before the second attempt
        multiplier: Growth factor applied per attempt (must be > 1.0)
        max_interval_ms: Cap applied to every computed delay

    Example:
        >>> policy = RetryPolicy(max_attempts=3, initial_interval_ms=500,
        ...                      multiplier=1.5, max_interval_ms=2000)
        >>> [policy.interval_ms(n) for n in (1, 2)]
        [500, 750]
    """

    max_attempts: int = 3
    initial_interval_ms: int = 500
    multiplier: float = 1.5
    max_interval_ms: int = 2000

    def __post_init__(self):
        """Coerce YAML/env strings and enforce invariants."""
        # frozen dataclass: bypass __setattr__ for coercion
        object.__setattr__(self, "max_attempts", int(self.max_attempts))
        object.__setattr__(self, "initial_interval_ms", int(self.initial_interval_ms))
        object.__setattr__(self, "multiplier", float(self.multiplier))
        object.__setattr__(self, "max_interval_ms", int(self.max_interval_ms))

        if self.max_attempts < 0:
            raise ValueError(f"max_attempts must be >= 0, got {self.max_attempts}")
        if self.initial_interval_ms < 0:
            raise ValueError(
                f"initial_interval_ms must be >= 0, got {self.initial_interval_ms}"
            )
        if self.multiplier <= 1.0:
            raise ValueError(f"multiplier must be > 1.0, got {self.multiplier}")
        if self.max_interval_ms < self.initial_interval_ms:
            raise ValueError(
                f"max_interval_ms ({self.max_interval_ms}) must be >= "
                f"initial_interval_ms ({self.initial_interval_ms})"
            )

    @classmethod
    def from_dict(cls, settings: dict[str, Any]) -> "RetryPolicy":
        known = {"max_attempts", "initial_interval_ms", "multiplier", "max_interval_ms"}
        return cls(**{k: v for k, v in settings.items() if k in known})

    @property
    def effective_max_attempts(self) -> int:
        # The first delivery always happens
        return max(1, self.max_attempts)

    def interval_ms(self, attempt: int) -> int:
        """
        Delay to wait after failed attempt `attempt` (1-based) before the next one.

        interval(n) = min(max_interval_ms, initial_interval_ms * multiplier^(n-1))
        """
        if attempt < 1:
            raise ValueError(f"attempt is 1-based, got {attempt}")

        interval = float(self.initial_interval_ms)
        for _ in range(attempt - 1):
            interval *= self.multiplier
            # Stop growing once capped (avoids float overflow for large attempts)
            if interval >= self.max_interval_ms:
                return self.max_interval_ms
        return min(self.max_interval_ms, int(round(interval)))

    def interval_seconds(self, attempt: int) -> float:
        return self.interval_ms(attempt) / 1000.0

    def can_retry(self, attempt: int) -> bool:
        """Whether another attempt is allowed after failed attempt `attempt`."""
        return attempt < self.effective_max_attempts

    def intervals_ms(self) -> Iterator[int]:
        """Every backoff delay the policy can produce, in order."""
        for attempt in range(1, self.effective_max_attempts):
            yield self.interval_ms(attempt)


# Matches the consumer error handler defaults: 500ms, x1.5, capped at 2s.
# Total worst-case backoff (1.25s) stays far below max.poll.interval.ms so
# retries never trigger a consumer group rebalance.
DEFAULT_RETRY_POLICY = RetryPolicy(
    max_attempts=3,
    initial_interval_ms=500,
    multiplier=1.5,
    max_interval_ms=2000,
)


__all__ = [
    "RetryPolicy",
    "DEFAULT_RETRY_POLICY",
]
