"""Rate-limit aware wrapper around individual remote service calls.

Every call the job driver makes goes through :class:`RateLimitedTransport`.
Rate-limit responses wait for the server supplied ``retry_after`` hint (or a
linear fallback), server and connection faults back off exponentially, and
client faults surface immediately. The attempt bound covers all retry kinds.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt

from ..errors import RateLimitedError, ServerFaultError, TransportFaultError
from ..utils.logging_utils import structured_log
from .backoff import next_delay
from .interfaces import MetricsClient, Sleeper

LOG = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS = (RateLimitedError, ServerFaultError, TransportFaultError)


class RateLimitedTransport:
    """Retries a single logical remote call within a bounded attempt budget."""

    def __init__(
        self,
        *,
        max_attempts: int = 3,
        rate_limit_delay: float = 2.0,
        initial_delay: float = 1.0,
        max_delay: float = 30.0,
        sleep: Sleeper = asyncio.sleep,
        metrics: MetricsClient | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.rate_limit_delay = rate_limit_delay
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self._sleep = sleep
        self.metrics = metrics

    def wait_for(self, error: BaseException | None, attempt_index: int) -> float:
        """Seconds to wait after ``attempt_index`` (0-based) failed with ``error``."""
        if isinstance(error, RateLimitedError):
            if error.retry_after is not None:
                return max(0.0, error.retry_after)
            return self.rate_limit_delay * (attempt_index + 1)
        return next_delay(attempt_index + 1, self.initial_delay, self.max_delay)

    async def call(
        self,
        operation: str,
        func: Callable[[], Awaitable[T]],
        *,
        max_attempts: int | None = None,
    ) -> T:
        attempts = max_attempts or self.max_attempts
        retrying = AsyncRetrying(
            sleep=self._sleep,
            stop=stop_after_attempt(attempts),
            wait=self._wait,
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            before_sleep=lambda state: self._log_retry(operation, attempts, state),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await func()
        raise RuntimeError(f"{operation} exhausted retries")  # pragma: no cover

    def _wait(self, retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        return self.wait_for(error, retry_state.attempt_number - 1)

    def _log_retry(self, operation: str, attempts: int, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else None
        rate_limited = isinstance(error, RateLimitedError)
        structured_log(
            LOG,
            logging.WARNING,
            "transport_rate_limited" if rate_limited else "transport_retry",
            operation=operation,
            attempt=retry_state.attempt_number,
            max_attempts=attempts,
            delay_s=delay,
            retry_after=getattr(error, "retry_after", None),
            error_type=type(error).__name__ if error else None,
            error=str(error) if error else None,
        )
        if self.metrics:
            name = "rate_limited_total" if rate_limited else "transport_retries_total"
            self.metrics.increment(name, stage="transport")


__all__ = ["RateLimitedTransport", "RETRYABLE_ERRORS"]
