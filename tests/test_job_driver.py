from __future__ import annotations

import asyncio

import pytest

from fieldextract.errors import (
    ClientFaultError,
    DocumentTooLargeError,
    EmptyOutputError,
    JobFailedError,
    JobTimeoutError,
    OutputParseError,
    UnsupportedDocumentError,
)
from fieldextract.models.extraction import Document, JobStatus, JobStatusReport
from fieldextract.services.job_driver import line_item_filename

PDF = Document(name="invoice.pdf", payload=b"%PDF-1.7 sample")


def _released_kinds(backend) -> list[str]:
    return sorted(resource.kind for resource in backend.released)


@pytest.mark.asyncio
async def test_successful_job_returns_named_line_items(backend, make_driver):
    backend.output = 'Here you go:\n```json\n[{"Qty": 1}, {"Qty": 2}]\n```'
    driver = make_driver()

    items = await driver.run(PDF, ["Qty"])

    assert [item.filename for item in items] == ["invoice_1.json", "invoice_2.json"]
    assert [dict(item.data) for item in items] == [{"Qty": 1}, {"Qty": 2}]
    assert backend.submitted == [("invoice.pdf", "tmpl-1", ("Qty",))]
    assert sorted(backend.released, key=lambda r: r.id) == sorted(backend.created, key=lambda r: r.id)
    assert backend.calls.count("release") == 2


@pytest.mark.asyncio
async def test_polls_until_complete(backend, make_driver, sleeper):
    backend.statuses = [JobStatus.PENDING, JobStatus.RUNNING, JobStatus.UNKNOWN, JobStatus.COMPLETED]
    driver = make_driver(poll_interval=2.5)

    await driver.run(PDF, [])

    assert sleeper.calls == [2.5, 2.5, 2.5]
    assert backend.calls.count("poll_status") == 4


@pytest.mark.asyncio
async def test_upload_failure_has_nothing_to_release(backend, make_driver):
    backend.fail("upload", ClientFaultError("rejected", status_code=400))
    driver = make_driver()

    with pytest.raises(ClientFaultError):
        await driver.run(PDF, [])
    assert backend.released == []
    assert "release" not in backend.calls


@pytest.mark.asyncio
async def test_submit_failure_releases_upload_and_context(backend, make_driver):
    backend.fail("submit_job", ClientFaultError("bad request", status_code=400))
    driver = make_driver()

    with pytest.raises(ClientFaultError):
        await driver.run(PDF, [])
    assert _released_kinds(backend) == ["context", "file"]
    assert backend.calls.count("release") == 2


@pytest.mark.asyncio
async def test_failed_status_raises_with_reason(backend, make_driver):
    backend.statuses = [JobStatusReport(status=JobStatus.FAILED, reason="corrupt pdf")]
    driver = make_driver()

    with pytest.raises(JobFailedError) as excinfo:
        await driver.run(PDF, [])
    assert str(excinfo.value) == "Run failed: corrupt pdf"
    assert _released_kinds(backend) == ["context", "file"]


@pytest.mark.asyncio
async def test_failed_status_without_reason(backend, make_driver):
    backend.statuses = [JobStatus.EXPIRED]
    driver = make_driver()

    with pytest.raises(JobFailedError, match="Run expired: Unknown error"):
        await driver.run(PDF, [])


@pytest.mark.asyncio
async def test_poll_timeout_releases_resources(backend, make_driver, sleeper):
    backend.statuses = [JobStatus.RUNNING]
    driver = make_driver(poll_interval=1.0, max_wait=3.0)

    with pytest.raises(JobTimeoutError, match="Processing timeout exceeded"):
        await driver.run(PDF, [])
    assert sleeper.calls == [1.0, 1.0, 1.0]
    assert _released_kinds(backend) == ["context", "file"]


@pytest.mark.asyncio
async def test_empty_output_is_an_error(backend, make_driver):
    backend.output = "   "
    driver = make_driver()

    with pytest.raises(EmptyOutputError):
        await driver.run(PDF, [])
    assert _released_kinds(backend) == ["context", "file"]


@pytest.mark.asyncio
async def test_unparsable_output_is_an_error(backend, make_driver):
    backend.output = "I could not read this document."
    driver = make_driver()

    with pytest.raises(OutputParseError):
        await driver.run(PDF, [])
    assert _released_kinds(backend) == ["context", "file"]


@pytest.mark.asyncio
async def test_release_failure_does_not_mask_success(backend, make_driver, stub_metrics):
    backend.release_failures["file"] = ClientFaultError("already deleted", status_code=404)
    driver = make_driver(metrics=stub_metrics)

    items = await driver.run(PDF, [])

    assert len(items) == 1
    assert _released_kinds(backend) == ["context"]
    assert "release_failures_total" in stub_metrics.counter_names()
    assert "jobs_succeeded_total" in stub_metrics.counter_names()


@pytest.mark.asyncio
async def test_missing_payload_makes_no_remote_calls(backend, make_driver):
    driver = make_driver()

    with pytest.raises(UnsupportedDocumentError):
        await driver.run(Document(name="empty.pdf", payload=None), [])
    assert backend.calls == []


@pytest.mark.asyncio
async def test_oversized_payload_is_rejected_before_upload(backend, make_driver):
    driver = make_driver(max_file_bytes=4)

    with pytest.raises(DocumentTooLargeError, match="file too large"):
        await driver.run(PDF, [])
    assert backend.calls == []


@pytest.mark.asyncio
async def test_template_is_created_once_across_jobs(backend, make_driver):
    driver = make_driver()

    await asyncio.gather(
        driver.run(Document(name="a.pdf", payload=b"a"), ["Total"]),
        driver.run(Document(name="b.pdf", payload=b"b"), ["Total"]),
    )

    assert backend.template_calls == 1
    assert backend.template_fields == ("Total",)


class BlockingSleeper:
    def __init__(self) -> None:
        self.entered = asyncio.Event()

    async def __call__(self, seconds: float) -> None:
        self.entered.set()
        await asyncio.Event().wait()


@pytest.mark.asyncio
async def test_cancellation_while_polling_still_releases(backend, make_driver):
    backend.statuses = [JobStatus.RUNNING]
    blocking = BlockingSleeper()
    driver = make_driver(sleep=blocking)

    task = asyncio.create_task(driver.run(PDF, []))
    await blocking.entered.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert _released_kinds(backend) == ["context", "file"]


def test_line_item_filename_strips_pdf_extension():
    assert line_item_filename("invoice.pdf", 1) == "invoice_1.json"
    assert line_item_filename("Scan.PDF", 3) == "Scan_3.json"
    assert line_item_filename("notes.txt", 2) == "notes.txt_2.json"


@pytest.mark.asyncio
@pytest.mark.parametrize("output", ["[1, 2]", '["INV-1", "INV-2"]', '[{"Qty": 1}, "INV-2"]'])
async def test_non_object_line_items_are_rejected(backend, make_driver, output):
    backend.output = output
    driver = make_driver()

    with pytest.raises(OutputParseError, match="line items must be objects"):
        await driver.run(PDF, ["Qty"])
    assert _released_kinds(backend) == ["context", "file"]


@pytest.mark.asyncio
async def test_undecodable_document_reports_decode_error(backend, make_driver):
    driver = make_driver()
    broken = Document(name="broken.pdf", decode_error="invalid file format: bad padding")

    with pytest.raises(UnsupportedDocumentError, match="invalid file format: bad padding"):
        await driver.run(broken, [])
    assert backend.calls == []
