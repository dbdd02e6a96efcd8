"""OpenAI Assistants implementation of the remote extraction backend.

Maps the abstract job lifecycle onto the Assistants API: uploaded file ->
thread (conversation context) -> message + run (job) -> run polling ->
thread messages (output). SDK retries are disabled; retrying is the
transport's job, so SDK errors are translated into the ``RemoteServiceError``
family here.
"""
from __future__ import annotations

import json
import logging
import textwrap
from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Optional, Sequence

import openai
from openai import AsyncOpenAI

from ..errors import ClientFaultError, RateLimitedError, ServerFaultError, TransportFaultError
from ..models.extraction import JobHandle, JobStatus, JobStatusReport, RemoteResource
from ..utils.logging_utils import structured_log

_LOG = logging.getLogger(__name__)

FILE_RESOURCE = "file"
CONTEXT_RESOURCE = "context"

_RUN_STATUS_MAP = {
    "queued": JobStatus.PENDING,
    "requires_action": JobStatus.PENDING,
    "in_progress": JobStatus.RUNNING,
    "cancelling": JobStatus.RUNNING,
    "completed": JobStatus.COMPLETED,
    "failed": JobStatus.FAILED,
    "incomplete": JobStatus.FAILED,
    "cancelled": JobStatus.CANCELLED,
    "expired": JobStatus.EXPIRED,
}

_FILE_SEARCH_TOOL = {"type": "file_search"}


def build_instructions(field_names: Sequence[str]) -> str:
    return textwrap.dedent(
        f"""
        Extract invoice data as JSON array. Each object = one line item.

        Required fields: {json.dumps(list(field_names))}

        Rules:
        - Use exact field names provided
        - Missing values: "" for strings, 0 for numbers
        - Include document-level data in each line item
        - Return only JSON array, no explanations

        Format:
        [{{"field1":"value1","field2":"value2"}}]
        """
    ).strip()


def map_run_status(raw: str | None) -> JobStatus:
    return _RUN_STATUS_MAP.get((raw or "").lower(), JobStatus.UNKNOWN)


def parse_retry_after(headers: Optional[Mapping[str, str]]) -> float | None:
    """Seconds to wait from ``retry-after-ms`` / ``retry-after`` headers."""
    if not headers:
        return None
    raw_ms = headers.get("retry-after-ms")
    if raw_ms:
        try:
            return float(raw_ms) / 1000.0
        except ValueError:
            pass
    raw = headers.get("retry-after")
    if raw:
        try:
            return float(raw)
        except ValueError:
            return None
    return None


@contextmanager
def translate_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except openai.RateLimitError as exc:
        headers = exc.response.headers if exc.response is not None else None
        raise RateLimitedError(
            f"{operation} rate limited: {exc.message}",
            retry_after=parse_retry_after(headers),
        ) from exc
    except openai.APIStatusError as exc:
        if exc.status_code >= 500:
            raise ServerFaultError(
                f"Server error: {exc.status_code}", status_code=exc.status_code
            ) from exc
        raise ClientFaultError(
            f"{operation} failed: {exc.message}", status_code=exc.status_code
        ) from exc
    except openai.APIConnectionError as exc:
        raise TransportFaultError(f"{operation} connection error: {exc}") from exc


class OpenAIAssistantsBackend:
    """Remote extraction backend built on the OpenAI Assistants API."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        client: Any = None,
    ) -> None:
        self.model = model
        self._client = client or AsyncOpenAI(api_key=api_key, max_retries=0)

    async def create_template(self, field_names: Sequence[str]) -> str:
        with translate_errors("assistant creation"):
            assistant = await self._client.beta.assistants.create(
                name="Batch Invoice Extractor",
                instructions=build_instructions(field_names),
                model=self.model,
                tools=[_FILE_SEARCH_TOOL],
            )
        structured_log(
            _LOG, logging.INFO, "assistant_created", template_id=assistant.id, model=self.model
        )
        return assistant.id

    async def upload(self, payload: bytes, name: str) -> RemoteResource:
        with translate_errors("file upload"):
            uploaded = await self._client.files.create(
                file=(name, payload, "application/pdf"),
                purpose="assistants",
            )
        return RemoteResource(kind=FILE_RESOURCE, id=uploaded.id)

    async def create_context(self) -> RemoteResource:
        with translate_errors("thread creation"):
            thread = await self._client.beta.threads.create()
        return RemoteResource(kind=CONTEXT_RESOURCE, id=thread.id)

    async def submit_job(
        self,
        context: RemoteResource,
        upload: RemoteResource,
        template_id: str,
        *,
        document_name: str,
        field_names: Sequence[str],
    ) -> JobHandle:
        content = f"Extract data from: {document_name}"
        if field_names:
            content += f"\nRequired fields: {json.dumps(list(field_names))}"
        with translate_errors("message creation"):
            await self._client.beta.threads.messages.create(
                thread_id=context.id,
                role="user",
                content=content,
                attachments=[{"file_id": upload.id, "tools": [_FILE_SEARCH_TOOL]}],
            )
        with translate_errors("run creation"):
            run = await self._client.beta.threads.runs.create(
                thread_id=context.id,
                assistant_id=template_id,
            )
        return JobHandle(context_id=context.id, job_id=run.id)

    async def poll_status(self, job: JobHandle) -> JobStatusReport:
        with translate_errors("run status"):
            run = await self._client.beta.threads.runs.retrieve(job.job_id, thread_id=job.context_id)
        last_error = getattr(run, "last_error", None)
        reason = getattr(last_error, "message", None) if last_error else None
        return JobStatusReport(status=map_run_status(getattr(run, "status", None)), reason=reason)

    async def fetch_output(self, context: RemoteResource) -> str:
        with translate_errors("message listing"):
            page = await self._client.beta.threads.messages.list(thread_id=context.id)
        for message in page.data:
            if message.role != "assistant":
                continue
            for block in message.content or []:
                text = getattr(block, "text", None)
                if text is not None and getattr(text, "value", None):
                    return text.value
            return ""
        return ""

    async def release(self, resource: RemoteResource) -> None:
        with translate_errors(f"{resource.kind} cleanup"):
            if resource.kind == FILE_RESOURCE:
                await self._client.files.delete(resource.id)
            elif resource.kind == CONTEXT_RESOURCE:
                await self._client.beta.threads.delete(resource.id)
            else:
                raise ValueError(f"Unknown resource kind: {resource.kind}")


__all__ = [
    "OpenAIAssistantsBackend",
    "build_instructions",
    "map_run_status",
    "parse_retry_after",
    "translate_errors",
]
