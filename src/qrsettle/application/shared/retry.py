"""Exponential backoff for calls to external services."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    stop_any,
)

from ...domain.wallet.entities import Clock, utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")
Sleep = Callable[[float], Awaitable[None]]


class RetryExhaustedError(Exception):
    """Raised when every attempt failed with a retryable error."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"Gave up after {attempts} attempt(s): {last_error}")
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be non-negative")


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Seconds to wait after failed attempt number `attempt` (1-based).

    The delay doubles with each attempt: base, 2*base, 4*base, ...
    """
    if attempt < 1:
        raise ValueError("attempt is 1-based")
    return base_delay * (2 ** (attempt - 1))


def stop_before_deadline(
    deadline: Optional[datetime], base_delay: float, clock: Clock
) -> Callable[[RetryCallState], bool]:
    """Stop condition: the next backoff delay would end after `deadline`."""

    def stop(retry_state: RetryCallState) -> bool:
        if deadline is None:
            return False
        delay = backoff_delay(retry_state.attempt_number, base_delay)
        return clock() + timedelta(seconds=delay) > deadline

    return stop


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    retry_on: Tuple[Type[BaseException], ...],
    policy: RetryPolicy = RetryPolicy(),
    sleep: Sleep = asyncio.sleep,
    deadline: Optional[datetime] = None,
    clock: Clock = utc_now,
) -> T:
    """Run `operation` until it succeeds or the policy is exhausted.

    Only exceptions in `retry_on` are retried; anything else propagates
    immediately. A delay that would end after `deadline` is not taken.

    Raises:
        RetryExhaustedError: If the last permitted attempt failed.
    """
    retrying = AsyncRetrying(
        retry=retry_if_exception_type(retry_on),
        stop=stop_any(
            stop_after_attempt(policy.max_attempts),
            stop_before_deadline(deadline, policy.base_delay, clock),
        ),
        wait=lambda rs: backoff_delay(rs.attempt_number, policy.base_delay),
        sleep=sleep,
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )
    try:
        return await retrying(operation)
    except RetryError as e:
        last_error = e.last_attempt.exception()
        assert last_error is not None
        raise RetryExhaustedError(e.last_attempt.attempt_number, last_error) from last_error
