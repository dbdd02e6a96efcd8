"""Shared interfaces used across the extraction services."""

from __future__ import annotations

from typing import Awaitable, Callable, Protocol, Sequence

from ..models.extraction import JobHandle, JobStatusReport, RemoteResource

Sleeper = Callable[[float], Awaitable[None]]


class ExtractionBackend(Protocol):
    """Remote extraction service used by the job lifecycle driver.

    Implementations raise the ``RemoteServiceError`` family from
    ``fieldextract.errors`` so the transport can classify failures.
    """

    async def create_template(self, field_names: Sequence[str]) -> str: ...

    async def upload(self, payload: bytes, name: str) -> RemoteResource: ...

    async def create_context(self) -> RemoteResource: ...

    async def submit_job(
        self,
        context: RemoteResource,
        upload: RemoteResource,
        template_id: str,
        *,
        document_name: str,
        field_names: Sequence[str],
    ) -> JobHandle: ...

    async def poll_status(self, job: JobHandle) -> JobStatusReport: ...

    async def fetch_output(self, context: RemoteResource) -> str: ...

    async def release(self, resource: RemoteResource) -> None: ...


class MetricsClient(Protocol):
    """Interface for emitting metrics to Prometheus."""

    def observe_latency(self, name: str, value: float, **labels: str) -> None: ...

    def increment(self, name: str, amount: int = 1, **labels: str) -> None: ...


__all__ = ["ExtractionBackend", "MetricsClient", "Sleeper"]
