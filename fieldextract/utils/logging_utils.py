"""Helpers for emitting consistent structured logs and stage telemetry."""

from __future__ import annotations

import logging
import time
from contextlib import AbstractContextManager
from typing import Any, Dict, Literal

STRUCTURED_LOG_ALLOWED_FIELDS: frozenset[str] = frozenset(
    {
        "attempt",
        "batch_size",
        "component",
        "delay_s",
        "document",
        "documents",
        "duration_ms",
        "elapsed_s",
        "error",
        "error_type",
        "event",
        "fields",
        "group_count",
        "group_index",
        "group_size",
        "job_id",
        "line_items",
        "max_attempts",
        "model",
        "operation",
        "payload_bytes",
        "placeholder",
        "reason",
        "request_id",
        "resource_id",
        "resource_kind",
        "retry_after",
        "stage",
        "status",
        "success_count",
        "template_id",
        "total_processed",
    }
)


def _filter_structured_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: value
        for key, value in fields.items()
        if key in STRUCTURED_LOG_ALLOWED_FIELDS and value is not None
    }


def structured_log(
    logger: logging.Logger, level: int, event: str, **fields: Any
) -> None:
    """Emit a log record with an `event` attribute and structured extras."""
    payload: Dict[str, Any] = {"event": event, "_structured_log": True}
    payload.update(_filter_structured_fields(fields))
    logger.log(level, event, extra=payload)


class StageMarker(AbstractContextManager["StageMarker"]):
    """Context manager that emits job stage start/completion telemetry."""

    def __init__(
        self,
        logger: logging.Logger,
        *,
        stage: str,
        level: int = logging.INFO,
        event: str = "job_stage",
        **base_fields: Any,
    ) -> None:
        self._logger = logger
        self._stage = stage
        self._event = event
        merged_fields = {"stage": stage}
        merged_fields.update(base_fields)
        self._base_fields: Dict[str, Any] = _filter_structured_fields(merged_fields)
        self._level = level
        self._started_at: float | None = None
        self._completion_fields: Dict[str, Any] = {}

    def add_completion_fields(self, **fields: Any) -> None:
        """Record safe values to append when the stage finishes."""
        self._completion_fields.update(_filter_structured_fields(fields))

    def _start(self) -> None:
        self._started_at = time.perf_counter()
        structured_log(
            self._logger,
            self._level,
            self._event,
            status="started",
            **self._base_fields,
        )

    def _finish(self, exc: BaseException | None) -> None:
        now = time.perf_counter()
        duration_ms = (
            int((now - self._started_at) * 1000) if self._started_at is not None else 0
        )
        payload = dict(self._base_fields)
        payload.update(self._completion_fields)
        payload["duration_ms"] = duration_ms
        if exc:
            payload["status"] = "failed"
            payload["error_type"] = exc.__class__.__name__
            payload["error"] = str(exc)
            structured_log(self._logger, logging.WARNING, self._event, **payload)
        else:
            payload["status"] = "completed"
            structured_log(self._logger, self._level, self._event, **payload)

    def __enter__(self) -> "StageMarker":
        self._start()
        return self

    def __exit__(
        self,
        exc_type,
        exc: BaseException | None,
        _tb,
    ) -> Literal[False]:
        self._finish(exc)
        return False


def stage_marker(
    logger: logging.Logger, *, stage: str, level: int = logging.INFO, **fields: Any
) -> StageMarker:
    """Convenience helper mirroring `with stage_marker(...)` usage."""
    return StageMarker(logger, stage=stage, level=level, **fields)


__all__ = [
    "StageMarker",
    "stage_marker",
    "structured_log",
    "STRUCTURED_LOG_ALLOWED_FIELDS",
]
