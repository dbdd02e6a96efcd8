"""Exponential backoff policy shared by every retrying call."""

from __future__ import annotations

from typing import Callable

from tenacity import RetryCallState


def next_delay(attempt_index: int, base_delay: float, cap_delay: float) -> float:
    """Delay to wait before attempt ``attempt_index`` (0 = first, no wait)."""
    if attempt_index <= 0:
        return 0
    return min(base_delay * 2 ** (attempt_index - 1), cap_delay)


def backoff_wait(base_delay: float, cap_delay: float) -> Callable[[RetryCallState], float]:
    """Tenacity ``wait`` strategy built on :func:`next_delay`.

    Tenacity asks for the wait after ``attempt_number`` attempts have run, which
    is exactly the zero-based index of the attempt about to start.
    """

    def _wait(retry_state: RetryCallState) -> float:
        return next_delay(retry_state.attempt_number, base_delay, cap_delay)

    return _wait


__all__ = ["next_delay", "backoff_wait"]
