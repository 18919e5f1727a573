"""
Retry policies.

Every retrying call site in the pipeline is parameterized by a RetryPolicy
instead of an inline loop:

    buy confirmation     bounded,   fixed 200ms
    sell 70% submission  unbounded, fixed 1s
    sell 100% submission unbounded, fixed 300ms
    sell 100% check      3 attempts, fixed 200ms
    stream reconnect     10 attempts, exponential 1s..30s
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, Tuple, Type, TypeVar, Union

if TYPE_CHECKING:
    from .clock import Clock

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryCallback = Callable[[int, Exception, float], None]


@dataclass(frozen=True)
class FixedBackoff:
    """Same delay before every retry."""
    delay: float

    def delay_for(self, attempt: int) -> float:
        return self.delay


@dataclass(frozen=True)
class ExponentialBackoff:
    """base * multiplier^attempt, capped."""
    base: float
    cap: float
    multiplier: float = 2.0

    def delay_for(self, attempt: int) -> float:
        return min(self.base * (self.multiplier ** attempt), self.cap)


Backoff = Union[FixedBackoff, ExponentialBackoff]


@dataclass(frozen=True)
class RetryPolicy:
    """
    How often and how patiently to retry an operation.

    Attributes:
        backoff: Delay schedule between attempts
        max_attempts: Total attempts allowed, None for unbounded
    """
    backoff: Backoff
    max_attempts: Optional[int] = None

    def __post_init__(self):
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    @classmethod
    def fixed(cls, delay: float, max_attempts: Optional[int] = None) -> "RetryPolicy":
        return cls(backoff=FixedBackoff(delay), max_attempts=max_attempts)

    @classmethod
    def exponential(
        cls,
        base: float,
        cap: float,
        max_attempts: Optional[int] = None,
    ) -> "RetryPolicy":
        return cls(backoff=ExponentialBackoff(base=base, cap=cap), max_attempts=max_attempts)

    @property
    def unbounded(self) -> bool:
        return self.max_attempts is None

    def allows(self, attempts_made: int) -> bool:
        """Whether another attempt is permitted after `attempts_made` attempts."""
        return self.max_attempts is None or attempts_made < self.max_attempts

    def delay_for(self, attempt: int) -> float:
        """Delay in seconds before the retry that follows `attempt`."""
        return self.backoff.delay_for(attempt)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        clock: "Clock",
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
        on_retry: Optional[RetryCallback] = None,
    ) -> T:
        """
        Call `operation` until it returns, retrying on `retry_on` exceptions.

        The last exception is re-raised once the attempt budget is exhausted.
        asyncio.CancelledError is never retried.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except retry_on as e:
                if not self.allows(attempt):
                    raise
                delay = self.delay_for(attempt)
                if on_retry:
                    on_retry(attempt, e, delay)
                else:
                    logger.debug(f"Attempt {attempt} failed ({e}), retrying in {delay:.2f}s")
                await clock.sleep(delay)
