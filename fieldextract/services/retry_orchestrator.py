"""Whole-job retries around the lifecycle driver."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Sequence

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from ..errors import NonRetryableExtractionError
from ..models.extraction import Document, ExtractedLineItem
from ..utils.logging_utils import structured_log
from .backoff import backoff_wait
from .interfaces import MetricsClient, Sleeper
from .job_driver import JobLifecycleDriver

LOG = logging.getLogger(__name__)

# Remote services report these conditions as plain error messages.
NON_RETRYABLE_MARKERS = (
    "file too large",
    "invalid file format",
    "unsupported file",
)


def is_retryable(exc: BaseException) -> bool:
    if not isinstance(exc, Exception):
        return False
    if isinstance(exc, NonRetryableExtractionError):
        return False
    message = str(exc).lower()
    return not any(marker in message for marker in NON_RETRYABLE_MARKERS)


class ExtractionRetrier:
    """Runs the driver up to ``max_attempts`` times with exponential backoff."""

    def __init__(
        self,
        driver: JobLifecycleDriver,
        *,
        max_attempts: int = 3,
        initial_delay: float = 1.0,
        max_delay: float = 30.0,
        sleep: Sleeper = asyncio.sleep,
        metrics: MetricsClient | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.driver = driver
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self._sleep = sleep
        self.metrics = metrics

    async def extract(self, document: Document, field_names: Sequence[str]) -> List[ExtractedLineItem]:
        retrying = AsyncRetrying(
            sleep=self._sleep,
            stop=stop_after_attempt(self.max_attempts),
            wait=backoff_wait(self.initial_delay, self.max_delay),
            retry=retry_if_exception(is_retryable),
            before_sleep=lambda state: self._log_retry(document, state),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self.driver.run(document, field_names)
        raise RuntimeError("Extraction retries exhausted")  # pragma: no cover

    def _log_retry(self, document: Document, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        structured_log(
            LOG,
            logging.WARNING,
            "extraction_retry",
            document=document.name,
            attempt=retry_state.attempt_number,
            max_attempts=self.max_attempts,
            delay_s=retry_state.next_action.sleep if retry_state.next_action else None,
            error_type=type(error).__name__ if error else None,
            error=str(error) if error else None,
        )
        if self.metrics:
            self.metrics.increment("extraction_retries_total", stage="retry")


__all__ = ["ExtractionRetrier", "is_retryable", "NON_RETRYABLE_MARKERS"]
