from __future__ import annotations

import pytest

from conftest import FakeBackend
from fieldextract.config import AppConfig
from fieldextract.errors import RateLimitedError
from fieldextract.main import build_scheduler
from fieldextract.models.extraction import Document, ExtractionRequest


def _fast_config(monkeypatch, **env: str) -> AppConfig:
    values = {
        "OPENAI_API_KEY": "sk-test",
        "BATCH_SIZE": "2",
        "RATE_LIMIT_DELAY_SECONDS": "0",
        "STAGGER_DELAY_SECONDS": "0",
        "INITIAL_DELAY_SECONDS": "0",
        "MAX_DELAY_SECONDS": "0",
        "POLL_INTERVAL_SECONDS": "0.01",
        "MAX_WAIT_SECONDS": "1",
    }
    values.update(env)
    for key, value in values.items():
        monkeypatch.setenv(key, value)
    return AppConfig()


def test_scheduler_is_offline_without_api_key():
    scheduler = build_scheduler(AppConfig())
    assert scheduler.offline is True


@pytest.mark.asyncio
async def test_scheduler_runs_documents_through_backend(monkeypatch):
    cfg = _fast_config(monkeypatch)
    backend = FakeBackend()
    backend.fail("create_template", RateLimitedError(retry_after=0))
    scheduler = build_scheduler(cfg, backend=backend)
    docs = tuple(Document(name=f"inv-{i}.pdf", payload=b"%PDF") for i in range(3))

    response = await scheduler.process(ExtractionRequest(documents=docs, field_names=("Total",)))

    assert scheduler.offline is False
    assert response.success_count == 3
    assert response.total_batches == 2
    assert response.is_using_mock_data is False
    assert backend.template_calls == 1
    assert backend.calls.count("create_template") == 2
    assert sorted(r.id for r in backend.released) == sorted(r.id for r in backend.created)
