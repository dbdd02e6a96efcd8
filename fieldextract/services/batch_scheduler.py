"""Batch scheduler: fixed-size groups, staggered concurrency, uniform results.

Documents are split into consecutive groups of ``batch_size``. Groups run one
after another with ``inter_batch_delay`` between them; inside a group every
document gets its own task, started ``position * stagger_delay`` seconds after
the group begins. Every document yields exactly one ``DocumentResult`` in
input order. Per-document failures become placeholder results, and an
unexpected failure of a whole group degrades that group to placeholders
instead of aborting the batch.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Sequence, Tuple

from ..errors import ValidationError
from ..models.extraction import BatchResponse, Document, DocumentResult, ExtractionRequest
from ..utils.logging_utils import stage_marker, structured_log
from .interfaces import MetricsClient, Sleeper
from .placeholder import build_placeholder_fields
from .retry_orchestrator import ExtractionRetrier

LOG = logging.getLogger(__name__)

NO_DATA_ERROR = "No PDF data provided for this file"

PlaceholderFactory = Callable[..., Dict[str, Any]]


@dataclass(slots=True)
class SchedulerSettings:
    batch_size: int = 5
    inter_batch_delay: float = 2.0
    stagger_delay: float = 0.5


def partition_documents(
    documents: Sequence[Document], group_size: int
) -> List[List[Tuple[int, Document]]]:
    """Split ``documents`` into consecutive groups, keeping input positions."""
    if group_size < 1:
        raise ValueError("group_size must be >= 1")
    indexed = list(enumerate(documents))
    return [indexed[start : start + group_size] for start in range(0, len(indexed), group_size)]


def _no_data_result(document: Document) -> DocumentResult:
    return DocumentResult(
        name=document.name,
        success=False,
        extracted_fields={},
        error=NO_DATA_ERROR,
        is_using_mock_data=True,
    )


class BatchScheduler:
    """Runs a whole extraction request and assembles the batch response.

    ``retrier`` may be ``None``: the service then runs in offline mode and
    answers every document with placeholder data without remote calls.
    """

    def __init__(
        self,
        *,
        retrier: ExtractionRetrier | None,
        settings: SchedulerSettings | None = None,
        sleep: Sleeper = asyncio.sleep,
        placeholder_factory: PlaceholderFactory = build_placeholder_fields,
        metrics: MetricsClient | None = None,
    ) -> None:
        self.retrier = retrier
        self.settings = settings or SchedulerSettings()
        self._sleep = sleep
        self._placeholder = placeholder_factory
        self.metrics = metrics

    @property
    def offline(self) -> bool:
        return self.retrier is None

    async def process(self, request: ExtractionRequest) -> BatchResponse:
        if not request.documents:
            raise ValidationError("PDF array is empty. Please provide at least one PDF.")
        groups = partition_documents(request.documents, self.settings.batch_size)
        total_groups = len(groups)
        results: List[DocumentResult] = []

        with stage_marker(
            LOG,
            stage="batch",
            event="batch_stage",
            documents=len(request.documents),
            group_count=total_groups,
            batch_size=self.settings.batch_size,
        ) as marker:
            for group_index, group in enumerate(groups):
                structured_log(
                    LOG,
                    logging.INFO,
                    "batch_group_started",
                    group_index=group_index + 1,
                    group_count=total_groups,
                    group_size=len(group),
                )
                try:
                    group_results = await self._process_group(group, request)
                except Exception as exc:  # noqa: BLE001 - the batch must always answer
                    structured_log(
                        LOG,
                        logging.ERROR,
                        "batch_group_failed",
                        group_index=group_index + 1,
                        error_type=type(exc).__name__,
                        error=str(exc),
                    )
                    group_results = [
                        self._placeholder_result(
                            document,
                            request,
                            error=f"Batch processing failed: {exc}",
                        )
                        for _position, document in group
                    ]
                results.extend(group_results)
                if group_index < total_groups - 1:
                    await self._sleep(self.settings.inter_batch_delay)

            response = BatchResponse(
                results=results,
                batch_size=self.settings.batch_size,
                total_batches=total_groups,
            )
            marker.add_completion_fields(
                total_processed=response.total_processed,
                success_count=response.success_count,
                placeholder=response.is_using_mock_data,
            )
        if self.metrics:
            placeholders = sum(1 for result in results if result.is_using_mock_data)
            self.metrics.increment("documents_placeholder_total", placeholders, stage="batch")
            self.metrics.increment(
                "documents_extracted_total", len(results) - placeholders, stage="batch"
            )
        return response

    async def _process_group(
        self,
        group: Sequence[Tuple[int, Document]],
        request: ExtractionRequest,
    ) -> List[DocumentResult]:
        if self.offline:
            structured_log(LOG, logging.WARNING, "offline_mode_placeholders", group_size=len(group))
            return [self._offline_result(document, request) for _position, document in group]

        tasks = [
            asyncio.create_task(self._process_document(position, document, request))
            for position, (_index, document) in enumerate(group)
        ]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            # Cancel siblings so their drivers release remote resources.
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _process_document(
        self,
        position: int,
        document: Document,
        request: ExtractionRequest,
    ) -> DocumentResult:
        offset = position * self.settings.stagger_delay
        if offset > 0:
            await self._sleep(offset)

        if document.decode_error is not None:
            return self._placeholder_result(document, request, error=document.decode_error)
        if document.payload is None:
            return _no_data_result(document)

        retrier = self.retrier
        if retrier is None:
            raise RuntimeError("extraction requested in offline mode")
        try:
            items = await retrier.extract(document, request.field_names)
        except Exception as exc:  # noqa: BLE001 - converted into a placeholder result
            structured_log(
                LOG,
                logging.ERROR,
                "document_failed",
                document=document.name,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return self._placeholder_result(document, request, error=str(exc))
        return DocumentResult(
            name=document.name,
            success=True,
            extracted_fields=items,
            is_using_mock_data=False,
        )

    def _offline_result(self, document: Document, request: ExtractionRequest) -> DocumentResult:
        if document.decode_error is not None:
            return self._placeholder_result(document, request, error=document.decode_error)
        if document.payload is None:
            return _no_data_result(document)
        return DocumentResult(
            name=document.name,
            success=True,
            extracted_fields=self._placeholder_fields(document, request),
            is_using_mock_data=True,
        )

    def _placeholder_fields(self, document: Document, request: ExtractionRequest) -> Dict[str, Any]:
        return self._placeholder(
            field_names=request.field_names,
            document_name=document.name,
            area_hint=request.area_hint,
        )

    def _placeholder_result(
        self, document: Document, request: ExtractionRequest, *, error: str
    ) -> DocumentResult:
        return DocumentResult(
            name=document.name,
            success=False,
            extracted_fields=self._placeholder_fields(document, request),
            error=error,
            is_using_mock_data=True,
        )


__all__ = [
    "BatchScheduler",
    "SchedulerSettings",
    "partition_documents",
    "NO_DATA_ERROR",
]
