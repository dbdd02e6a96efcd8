from __future__ import annotations

import itertools
from typing import Any, Dict, List, Sequence

import pytest

from fieldextract.config import get_config
from fieldextract.models.extraction import (
    JobHandle,
    JobStatus,
    JobStatusReport,
    RemoteResource,
)
from fieldextract.services.job_driver import JobLifecycleDriver
from fieldextract.services.template_cache import SharedTemplateCache
from fieldextract.services.transport import RateLimitedTransport


class RecordingSleeper:
    """Sleeper that records requested delays instead of waiting."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class StubMetrics:
    def __init__(self) -> None:
        self.counter_calls: list[tuple[str, int, dict[str, str]]] = []
        self.latency_calls: list[tuple[str, float, dict[str, str]]] = []

    def observe_latency(self, name: str, value: float, **labels: str) -> None:
        self.latency_calls.append((name, value, labels))

    def increment(self, name: str, amount: int = 1, **labels: str) -> None:
        self.counter_calls.append((name, amount, labels))

    def counter_names(self) -> list[str]:
        return [name for name, _amount, _labels in self.counter_calls]


class FakeBackend:
    """In-memory extraction backend with scripted failures."""

    def __init__(
        self,
        *,
        output: str = '[{"Invoice Number": "INV-1"}]',
        statuses: Sequence[JobStatus | JobStatusReport] = (JobStatus.COMPLETED,),
    ) -> None:
        self.output = output
        self.statuses: List[JobStatus | JobStatusReport] = list(statuses)
        self.failures: Dict[str, List[BaseException]] = {}
        self.release_failures: Dict[str, BaseException] = {}
        self.calls: list[str] = []
        self.created: list[RemoteResource] = []
        self.released: list[RemoteResource] = []
        self.submitted: list[tuple[str, str, tuple[str, ...]]] = []
        self.template_calls = 0
        self.template_fields: tuple[str, ...] | None = None
        self._ids = itertools.count(1)

    def fail(self, operation: str, *errors: BaseException) -> None:
        self.failures.setdefault(operation, []).extend(errors)

    def _record(self, operation: str) -> None:
        self.calls.append(operation)
        queued = self.failures.get(operation)
        if queued:
            raise queued.pop(0)

    def _resource(self, kind: str) -> RemoteResource:
        resource = RemoteResource(kind=kind, id=f"{kind}-{next(self._ids)}")
        self.created.append(resource)
        return resource

    async def create_template(self, field_names: Sequence[str]) -> str:
        self._record("create_template")
        self.template_calls += 1
        self.template_fields = tuple(field_names)
        return f"tmpl-{self.template_calls}"

    async def upload(self, payload: bytes, name: str) -> RemoteResource:
        self._record("upload")
        return self._resource("file")

    async def create_context(self) -> RemoteResource:
        self._record("create_context")
        return self._resource("context")

    async def submit_job(
        self,
        context: RemoteResource,
        upload: RemoteResource,
        template_id: str,
        *,
        document_name: str,
        field_names: Sequence[str],
    ) -> JobHandle:
        self._record("submit_job")
        self.submitted.append((document_name, template_id, tuple(field_names)))
        return JobHandle(context_id=context.id, job_id=f"run-{next(self._ids)}")

    async def poll_status(self, job: JobHandle) -> JobStatusReport:
        self._record("poll_status")
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if isinstance(status, JobStatusReport):
            return status
        return JobStatusReport(status=status)

    async def fetch_output(self, context: RemoteResource) -> str:
        self._record("fetch_output")
        return self.output

    async def release(self, resource: RemoteResource) -> None:
        self.calls.append("release")
        error = self.release_failures.get(resource.kind)
        if error is not None:
            raise error
        self.released.append(resource)


@pytest.fixture
def sleeper() -> RecordingSleeper:
    return RecordingSleeper()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def stub_metrics() -> StubMetrics:
    return StubMetrics()


@pytest.fixture
def make_driver(backend: FakeBackend, sleeper: RecordingSleeper):
    def _factory(**overrides: Any) -> JobLifecycleDriver:
        transport = RateLimitedTransport(
            max_attempts=overrides.pop("transport_attempts", 3),
            sleep=overrides.get("sleep", sleeper),
        )
        options: Dict[str, Any] = {
            "backend": backend,
            "transport": transport,
            "template_cache": SharedTemplateCache(backend.create_template),
            "poll_interval": 1.0,
            "max_wait": 10.0,
            "sleep": sleeper,
        }
        options.update(overrides)
        return JobLifecycleDriver(**options)

    return _factory


@pytest.fixture(autouse=True)
def _reset_config_cache(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    get_config.cache_clear()
    yield
    get_config.cache_clear()
