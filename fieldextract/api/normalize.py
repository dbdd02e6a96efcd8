"""Boundary normalisation of extraction request bodies.

Clients send documents and field names under several historical key names.
This module accepts all of them and produces one canonical
``ExtractionRequest``; nothing past this point sees the alternate shapes.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from typing import Any, List

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError as PydanticValidationError,
    field_validator,
)

from fieldextract.errors import ValidationError
from fieldextract.models.extraction import Document, ExtractionRequest
from fieldextract.utils.logging_utils import structured_log

_LOG = logging.getLogger("api.normalize")

_WHITESPACE_RE = re.compile(r"\s+")


class DocumentPayload(BaseModel):
    """Object form of a document entry."""

    model_config = ConfigDict(extra="ignore")

    data: str | None = Field(
        default=None, validation_alias=AliasChoices("pdfBase64", "base64", "data")
    )
    name: str | None = Field(default=None, validation_alias=AliasChoices("name", "filename"))

    @field_validator("data", "name", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        if not isinstance(value, str):
            raise ValueError("must be a string")
        return value


class ExtractionRequestBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    pdfs: Any = Field(
        default=None, validation_alias=AliasChoices("pdfs", "pdfsBase64", "pdfBase64")
    )
    field_names: Any = Field(default=None, validation_alias=AliasChoices("fieldNames", "fields"))
    selected_area: Any = Field(default=None, validation_alias=AliasChoices("selectedArea", "area"))


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, dict):
        return "object"
    if isinstance(value, str):
        return "string"
    return type(value).__name__


def decode_payload(encoded: str) -> bytes:
    """Decode base64 (optionally a ``data:...;base64,`` URL) into bytes.

    Embedded whitespace and missing padding are tolerated; anything else that
    is not base64 raises ``binascii.Error``.
    """
    raw = encoded.strip()
    if raw.startswith("data:") and "," in raw:
        raw = raw.split(",", 1)[1]
    raw = _WHITESPACE_RE.sub("", raw)
    raw += "=" * (-len(raw) % 4)
    return base64.b64decode(raw, validate=True)


def _normalise_field_names(raw: Any) -> tuple[str, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ValidationError(f"Field names must be an array. Found type: {_type_name(raw)}")
    return tuple(str(item) for item in raw if item is not None and str(item).strip())


def _normalise_document(entry: Any, index: int, *, max_file_bytes: int) -> Document:
    default_name = f"document-{index + 1}.pdf"
    if isinstance(entry, str):
        name, encoded = default_name, entry or None
    elif isinstance(entry, dict):
        try:
            parsed = DocumentPayload.model_validate(entry)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid document entry at position {index + 1}: {exc}") from exc
        name, encoded = parsed.name or default_name, parsed.data
    else:
        return Document(name=default_name, payload=None)

    if encoded is None:
        return Document(name=name, payload=None)
    approx_bytes = (len(encoded) * 3) // 4
    if approx_bytes > max_file_bytes:
        structured_log(
            _LOG,
            logging.WARNING,
            "document_exceeds_size_limit",
            document=name,
            payload_bytes=approx_bytes,
        )
    try:
        payload = decode_payload(encoded)
    except (binascii.Error, ValueError) as exc:
        structured_log(
            _LOG, logging.WARNING, "document_decode_failed", document=name, error=str(exc)
        )
        return Document(
            name=name,
            payload=None,
            decode_error=f"invalid file format: could not decode base64 data ({exc})",
        )
    return Document(name=name, payload=payload)


def normalize_request(
    body: Any,
    *,
    max_files: int = 100,
    max_file_bytes: int = 512 * 1024 * 1024,
) -> ExtractionRequest:
    """Validate a decoded JSON body and build the canonical request."""
    if not isinstance(body, dict):
        raise ValidationError(f"Request body must be a JSON object. Found type: {_type_name(body)}")
    parsed = ExtractionRequestBody.model_validate(body)
    pdfs = parsed.pdfs if parsed.pdfs is not None else []

    if not isinstance(pdfs, list):
        raise ValidationError(f"PDF data is not an array. Found type: {_type_name(pdfs)}")
    if not pdfs:
        raise ValidationError("PDF array is empty. Please provide at least one PDF.")
    if len(pdfs) > max_files:
        raise ValidationError(f"Too many files. Maximum {max_files} files allowed per request.")

    documents: List[Document] = [
        _normalise_document(entry, index, max_file_bytes=max_file_bytes)
        for index, entry in enumerate(pdfs)
    ]
    structured_log(_LOG, logging.INFO, "request_normalised", documents=len(documents))
    return ExtractionRequest(
        documents=tuple(documents),
        field_names=_normalise_field_names(parsed.field_names),
        area_hint=parsed.selected_area,
    )


__all__ = ["normalize_request", "decode_payload", "DocumentPayload", "ExtractionRequestBody"]
