"""Retry helpers: exponential backoff decorator and declarative stage policies."""

import asyncio
import logging
from enum import Enum
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)
T = TypeVar("T")


def exponential_schedule(
    base_delay: float,
    steps: int,
    ceiling: Optional[float] = None,
) -> list[float]:
    """
    Build a backoff schedule where delay_n = base_delay * 2^n.

    Args:
        base_delay: Delay before the first retry, in seconds
        steps: Number of delays to produce
        ceiling: Optional upper bound applied to every delay

    Returns:
        List of delays in seconds
    """
    delays = [base_delay * (2**n) for n in range(max(steps, 0))]
    if ceiling is not None:
        delays = [min(delay, ceiling) for delay in delays]
    return delays


class OnExhaustion(str, Enum):
    """What the orchestrator does once a stage runs out of attempts."""

    FAIL = "fail"
    DEGRADE = "degrade"


class RetryPolicy(BaseModel):
    """Per-stage retry policy interpreted uniformly by the orchestrator."""

    max_attempts: int = Field(default=1, ge=1)
    backoff_schedule: list[float] = Field(default_factory=list)
    on_exhaustion: OnExhaustion = OnExhaustion.FAIL
    timeout_seconds: float = Field(default=30.0, gt=0)

    def delay_after(self, attempt: int) -> float:
        """Delay to wait after failed attempt number `attempt` (1-based).

        The last schedule entry repeats once the schedule runs out.
        """
        if not self.backoff_schedule:
            return 0.0
        index = min(max(attempt - 1, 0), len(self.backoff_schedule) - 1)
        return self.backoff_schedule[index]


def with_retry(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    exceptions: tuple[type[Exception], ...] = (Exception,),
    ceiling: Optional[float] = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator for exponential backoff retry logic.

    Args:
        max_attempts: Maximum number of attempts
        base_delay: Base delay in seconds (doubles each attempt)
        exceptions: Tuple of exception types to catch
        ceiling: Optional cap on any single delay

    Returns:
        Decorated function with retry logic
    """
    delays = exponential_schedule(base_delay, max_attempts - 1, ceiling)

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            last_exception: Exception | None = None

            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e
                    if attempt < max_attempts - 1:
                        delay = delays[attempt]
                        logger.warning(
                            f"Attempt {attempt + 1}/{max_attempts} of {func.__name__} failed: {e}. "
                            f"Retrying in {delay}s..."
                        )
                        await asyncio.sleep(delay)
                    else:
                        logger.error(f"All {max_attempts} attempts of {func.__name__} failed: {e}")

            raise last_exception  # type: ignore

        return wrapper  # type: ignore

    return decorator
