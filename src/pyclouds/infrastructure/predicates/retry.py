"""Poll a predicate until it holds or time runs out."""

import concurrent.futures
import time
from collections.abc import Callable
from typing import Generic, Optional, TypeVar

from pyclouds.domain.base.exceptions import IllegalStateError, OperationTimeoutError
from pyclouds.infrastructure.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_FALSE_ON = (
    IllegalStateError,
    OperationTimeoutError,
    concurrent.futures.TimeoutError,
    concurrent.futures.CancelledError,
    TimeoutError,
)


def _first_false_on(error: BaseException) -> Optional[BaseException]:
    seen = set()
    current: Optional[BaseException] = error
    while current is not None and id(current) not in seen:
        if isinstance(current, _FALSE_ON):
            return current
        seen.add(id(current))
        current = current.__cause__
    return None


class RetryablePredicate(Generic[T]):
    """
    Callable that re-evaluates ``predicate`` with growing sleeps.

    The predicate is always evaluated at least once, even for a zero or
    negative timeout, and once more after the deadline passes. The sleep
    before attempt ``n + 1`` is ``period * 1.5 ** (n - 1)``, capped at
    ``max_period`` and at the time remaining.

    Exceptions signalling an illegal state, a timeout or a cancellation,
    directly or as a cause, count as False. Anything else propagates.
    """

    def __init__(
        self,
        predicate: Callable[[T], bool],
        timeout: float,
        period: float = 0.05,
        max_period: Optional[float] = None,
    ) -> None:
        if period < 0:
            raise ValueError("period cannot be negative")
        self.predicate = predicate
        self.timeout = timeout
        self.period = period
        self.max_period = period * 10 if max_period is None else max_period

    def __call__(self, value: T) -> bool:
        try:
            start = time.monotonic()
            deadline = start + self.timeout
            attempt = 1
            while time.monotonic() - start < self.timeout:
                if self.predicate(value):
                    return True
                time.sleep(self.next_max_interval(attempt, deadline))
                attempt += 1
            return bool(self.predicate(value))
        except Exception as e:
            cause = _first_false_on(e)
            if cause is None:
                raise
            logger.warning("returning false on %s: %s", type(cause).__name__, cause)
            return False

    apply = __call__

    def next_max_interval(self, attempt: int, deadline: float) -> float:
        interval = min(self.period * 1.5 ** (attempt - 1), self.max_period)
        remaining = deadline - time.monotonic()
        return max(0.0, min(interval, remaining))

    def __repr__(self) -> str:
        return (
            f"RetryablePredicate({self.predicate!r}, timeout={self.timeout}, "
            f"period={self.period}, max_period={self.max_period})"
        )


def retry(
    predicate: Callable[[T], bool],
    timeout: float,
    period: float = 0.05,
    max_period: Optional[float] = None,
) -> RetryablePredicate[T]:
    """Wrap ``predicate`` so calling it polls until it holds or ``timeout`` seconds pass."""
    return RetryablePredicate(predicate, timeout, period, max_period)


def starts_with(prefix: str) -> Callable[[Optional[str]], bool]:
    """Predicate matching strings that begin with ``prefix``."""

    def _starts_with(value: Optional[str]) -> bool:
        return value is not None and value.startswith(prefix)

    return _starts_with
