"""Typed records shared by the extraction scheduler, driver and API layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


@dataclass(frozen=True, slots=True)
class Document:
    """One input file.

    ``payload`` is ``None`` when the caller sent no data, or when the data
    could not be decoded; ``decode_error`` then says why.
    """

    name: str
    payload: bytes | None = None
    decode_error: str | None = None


@dataclass(frozen=True, slots=True)
class ExtractionRequest:
    """Canonical request produced by the boundary normalisation step."""

    documents: tuple[Document, ...]
    field_names: tuple[str, ...] = ()
    area_hint: Any = None


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    UNKNOWN = "unknown"

    @property
    def is_failure(self) -> bool:
        return self in _FAILURE_STATUSES


_FAILURE_STATUSES = frozenset({JobStatus.FAILED, JobStatus.CANCELLED, JobStatus.EXPIRED})


@dataclass(frozen=True, slots=True)
class JobStatusReport:
    status: JobStatus
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class RemoteResource:
    """Handle returned by the remote service that must be released."""

    kind: str
    id: str


@dataclass(frozen=True, slots=True)
class JobHandle:
    context_id: str
    job_id: str


@dataclass(frozen=True, slots=True)
class ExtractedLineItem:
    filename: str
    data: Mapping[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"filename": self.filename, "data": dict(self.data)}


@dataclass(slots=True)
class DocumentResult:
    """Outcome for one document: real line items or a placeholder mapping."""

    name: str
    success: bool
    extracted_fields: list[ExtractedLineItem] | dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    is_using_mock_data: bool = False

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.extracted_fields, list):
            fields: Any = [item.to_dict() for item in self.extracted_fields]
        else:
            fields = dict(self.extracted_fields)
        payload: dict[str, Any] = {
            "name": self.name,
            "success": self.success,
            "extractedFields": fields,
            "isUsingMockData": self.is_using_mock_data,
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass(slots=True)
class BatchResponse:
    results: list[DocumentResult]
    batch_size: int
    total_batches: int

    @property
    def total_processed(self) -> int:
        return len(self.results)

    @property
    def success_count(self) -> int:
        return sum(1 for result in self.results if result.success)

    @property
    def is_using_mock_data(self) -> bool:
        return any(result.is_using_mock_data for result in self.results)

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [result.to_dict() for result in self.results],
            "totalProcessed": self.total_processed,
            "successCount": self.success_count,
            "isUsingMockData": self.is_using_mock_data,
            "batchInfo": {
                "batchSize": self.batch_size,
                "totalBatches": self.total_batches,
            },
        }


__all__ = [
    "Document",
    "ExtractionRequest",
    "JobStatus",
    "JobStatusReport",
    "RemoteResource",
    "JobHandle",
    "ExtractedLineItem",
    "DocumentResult",
    "BatchResponse",
]
