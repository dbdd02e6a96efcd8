"""Locate and parse the JSON line-item array inside model output text."""

from __future__ import annotations

import json
import re
from typing import Any, List

from ..errors import OutputParseError

_FENCED_BLOCK_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL | re.IGNORECASE)
_DECODER = json.JSONDecoder()


def _is_line_items(value: Any) -> bool:
    return isinstance(value, list) and bool(value) and all(isinstance(item, dict) for item in value)


def _first_array(text: str) -> List[Any] | None:
    """First well-formed, non-empty array of objects embedded in ``text``."""
    start = text.find("[")
    while start != -1:
        try:
            value, _end = _DECODER.raw_decode(text, start)
        except json.JSONDecodeError:
            value = None
        if _is_line_items(value):
            return value
        start = text.find("[", start + 1)
    return None


def extract_json_array(text: str) -> List[Any]:
    """Return the line items encoded in ``text``.

    Accepts a bare array, an array inside a fenced code block, or an array
    embedded in prose. A single JSON object is treated as one line item.
    """
    candidates: List[str] = [match.group(1) for match in _FENCED_BLOCK_RE.finditer(text)]
    candidates.append(text)
    last_error: Exception | None = None
    for candidate in candidates:
        stripped = candidate.strip()
        if not stripped:
            continue
        try:
            value = json.loads(stripped)
        except json.JSONDecodeError as exc:
            last_error = exc
            value = _first_array(stripped)
            if value is None:
                continue
        if isinstance(value, list):
            return value
        if isinstance(value, dict):
            return [value]
    detail = f": {last_error}" if last_error else ""
    raise OutputParseError(f"Invalid JSON response{detail}")


__all__ = ["extract_json_array"]
