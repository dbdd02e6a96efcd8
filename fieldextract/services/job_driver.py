"""Per-document job lifecycle: upload, submit, poll, fetch, clean up.

The driver owns every remote resource it creates. Whatever happens after the
upload (submission error, failed run, poll timeout, unparsable output or
cancellation of the calling task) the created resources are released before
``run`` hands control back. Release failures are logged and never replace the
job's own outcome.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import List, Sequence

from ..errors import (
    DocumentTooLargeError,
    EmptyOutputError,
    JobFailedError,
    JobTimeoutError,
    OutputParseError,
    UnsupportedDocumentError,
)
from ..models.extraction import (
    Document,
    ExtractedLineItem,
    JobHandle,
    JobStatus,
    RemoteResource,
)
from ..utils.json_payload import extract_json_array
from ..utils.logging_utils import stage_marker, structured_log
from .interfaces import ExtractionBackend, MetricsClient, Sleeper
from .template_cache import SharedTemplateCache
from .transport import RateLimitedTransport

LOG = logging.getLogger(__name__)


class JobState(str, Enum):
    CREATED = "created"
    UPLOADING = "uploading"
    SUBMITTING = "submitting"
    POLLING = "polling"
    FETCHING = "fetching"
    CLEANUP = "cleanup"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def line_item_filename(document_name: str, index: int) -> str:
    """``invoice.pdf`` + 2 -> ``invoice_2.json``."""
    base = document_name[:-4] if document_name.lower().endswith(".pdf") else document_name
    return f"{base}_{index}.json"


class JobLifecycleDriver:
    """Drives one document through the remote extraction service."""

    def __init__(
        self,
        *,
        backend: ExtractionBackend,
        transport: RateLimitedTransport,
        template_cache: SharedTemplateCache,
        poll_interval: float = 3.0,
        max_wait: float = 300.0,
        max_file_bytes: int = 512 * 1024 * 1024,
        sleep: Sleeper = asyncio.sleep,
        metrics: MetricsClient | None = None,
    ) -> None:
        self.backend = backend
        self.transport = transport
        self.template_cache = template_cache
        self.poll_interval = poll_interval
        self.max_wait = max_wait
        self.max_file_bytes = max_file_bytes
        self._sleep = sleep
        self.metrics = metrics

    async def run(self, document: Document, field_names: Sequence[str]) -> List[ExtractedLineItem]:
        payload = document.payload
        if payload is None:
            raise UnsupportedDocumentError(
                document.decode_error or "No PDF data provided for this file"
            )
        if len(payload) > self.max_file_bytes:
            raise DocumentTooLargeError(
                f"file too large: {len(payload)} bytes exceeds limit of {self.max_file_bytes}"
            )

        started = time.perf_counter()
        state = JobState.CREATED
        resources: list[RemoteResource] = []
        try:
            state = JobState.UPLOADING
            with stage_marker(LOG, stage=state.value, document=document.name, payload_bytes=len(payload)):
                upload = await self.transport.call(
                    "upload", lambda: self.backend.upload(payload, document.name)
                )
                resources.append(upload)

            state = JobState.SUBMITTING
            with stage_marker(LOG, stage=state.value, document=document.name) as marker:
                template_id = await self.template_cache.get_or_create(field_names)
                context = await self.transport.call("create_context", self.backend.create_context)
                resources.append(context)
                job = await self.transport.call(
                    "submit_job",
                    lambda: self.backend.submit_job(
                        context,
                        upload,
                        template_id,
                        document_name=document.name,
                        field_names=tuple(field_names),
                    ),
                )
                marker.add_completion_fields(job_id=job.job_id, template_id=template_id)

            state = JobState.POLLING
            with stage_marker(LOG, stage=state.value, document=document.name, job_id=job.job_id):
                await self.await_completion(job, budget=self.max_wait)

            state = JobState.FETCHING
            with stage_marker(LOG, stage=state.value, document=document.name) as marker:
                text = await self.transport.call(
                    "fetch_output", lambda: self.backend.fetch_output(context)
                )
                if not text or not text.strip():
                    raise EmptyOutputError("Assistant returned empty response")
                items = extract_json_array(text.strip())
                if not all(isinstance(item, dict) for item in items):
                    raise OutputParseError("Invalid JSON response: line items must be objects")
                marker.add_completion_fields(line_items=len(items))

            state = JobState.SUCCEEDED
            return [
                ExtractedLineItem(filename=line_item_filename(document.name, index), data=item)
                for index, item in enumerate(items, start=1)
            ]
        except BaseException as exc:
            structured_log(
                LOG,
                logging.WARNING,
                "job_failed",
                document=document.name,
                stage=state.value,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            state = JobState.FAILED
            raise
        finally:
            if resources:
                with stage_marker(LOG, stage=JobState.CLEANUP.value, document=document.name):
                    await asyncio.shield(self._release_all(document.name, resources))
            if self.metrics:
                self.metrics.observe_latency(
                    "job_latency_seconds", time.perf_counter() - started, stage="job"
                )
                self.metrics.increment(f"jobs_{state.value}_total", stage="job")

    async def await_completion(
        self,
        job: JobHandle,
        *,
        budget: float,
        interval: float | None = None,
    ) -> None:
        """Poll ``job`` until it completes; ``budget`` caps the total wait."""
        interval = self.poll_interval if interval is None else interval
        waited = 0.0
        while waited < budget:
            report = await self.transport.call(
                "poll_status", lambda: self.backend.poll_status(job)
            )
            if report.status is JobStatus.COMPLETED:
                return
            if report.status.is_failure:
                raise JobFailedError(report.status.value, report.reason)
            structured_log(
                LOG,
                logging.DEBUG,
                "job_poll",
                job_id=job.job_id,
                status=report.status.value,
                elapsed_s=waited,
            )
            await self._sleep(interval)
            waited += interval
        raise JobTimeoutError("Processing timeout exceeded")

    async def _release_all(self, document_name: str, resources: Sequence[RemoteResource]) -> None:
        await asyncio.gather(
            *(self._release(document_name, resource) for resource in resources)
        )

    async def _release(self, document_name: str, resource: RemoteResource) -> None:
        try:
            await self.transport.call("release", lambda: self.backend.release(resource))
        except Exception as exc:  # noqa: BLE001 - cleanup must not mask the job outcome
            structured_log(
                LOG,
                logging.WARNING,
                "resource_release_failed",
                document=document_name,
                resource_kind=resource.kind,
                resource_id=resource.id,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            if self.metrics:
                self.metrics.increment("release_failures_total", stage="cleanup")
        else:
            structured_log(
                LOG,
                logging.DEBUG,
                "resource_released",
                document=document_name,
                resource_kind=resource.kind,
                resource_id=resource.id,
            )


__all__ = ["JobLifecycleDriver", "JobState", "line_item_filename"]
