"""Extraction route: normalise the request and run the batch scheduler."""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from fieldextract.errors import ValidationError
from fieldextract.logging_setup import set_request_id
from fieldextract.api.normalize import normalize_request
from fieldextract.utils.logging_utils import stage_marker, structured_log

router = APIRouter()

_API_LOG = logging.getLogger("api")


def error_response(message: str, *, status_code: int = 400) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": message, "isUsingMockData": True, "results": []},
    )


@router.post("")
async def extract_fields(request: Request) -> JSONResponse:
    """Extract the requested fields from every submitted PDF."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    set_request_id(request_id)
    try:
        try:
            body = await request.json()
        except ValueError as exc:
            raise ValidationError(f"Invalid JSON in request body: {exc}") from exc

        cfg = request.app.state.config
        extraction_request = normalize_request(
            body,
            max_files=cfg.max_files_per_request,
            max_file_bytes=cfg.max_file_bytes,
        )
        scheduler = request.app.state.scheduler
        with stage_marker(
            _API_LOG,
            stage="extract_request",
            request_id=request_id,
            documents=len(extraction_request.documents),
            fields=len(extraction_request.field_names),
        ) as marker:
            response = await scheduler.process(extraction_request)
            marker.add_completion_fields(
                success_count=response.success_count,
                total_processed=response.total_processed,
            )
        content = response.to_dict()
    except ValidationError as exc:
        structured_log(
            _API_LOG, logging.WARNING, "extract_request_rejected", request_id=request_id, error=str(exc)
        )
        return error_response(str(exc))
    except Exception as exc:  # noqa: BLE001 - boundary reports every failure as JSON
        _API_LOG.exception("extract_request_failed", extra={"request_id": request_id})
        return error_response(str(exc), status_code=500)
    finally:
        set_request_id(None)
    return JSONResponse(content, headers={"X-Request-ID": request_id})


__all__ = ["router", "error_response"]
