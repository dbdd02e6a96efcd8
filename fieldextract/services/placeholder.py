"""Deterministic placeholder field values used when real extraction is unavailable."""

from __future__ import annotations

import hashlib
import random
import re
from datetime import date
from typing import Any, Dict, Sequence

_DIGITS_RE = re.compile(r"\d+")


def _document_number(document_name: str) -> int:
    match = _DIGITS_RE.search(document_name)
    if match:
        return int(match.group(0))
    digest = hashlib.sha256(document_name.encode("utf-8")).hexdigest()
    return int(digest[:8], 16) % 1000


def build_placeholder_fields(
    *,
    field_names: Sequence[str],
    document_name: str = "unknown.pdf",
    area_hint: Any = None,
    today: date | None = None,
) -> Dict[str, Any]:
    """Synthesize invoice-like field values keyed by the document name.

    The same name and field list always produce the same values, apart from
    ``Document Date`` which follows ``today``. Unknown requested fields map to
    ``"Sample <field>"``. ``area_hint`` is accepted for interface parity and
    does not influence the values.
    """
    number = _document_number(document_name)
    rng = random.Random(f"{document_name}:{number}")
    taxable_value = round(rng.uniform(10000, 60000), 2)
    tax_rate = 18.0
    tax_value = round(taxable_value * tax_rate / 100, 2)
    shipment_id = f"FBA15K{number}N1JKF"

    values: Dict[str, Any] = {
        "Document Number": shipment_id,
        "Document Date": (today or date.today()).isoformat(),
        "FBA Shipment ID": shipment_id,
        "Purpose of transfer": "Stock Transfer",
        "Number of box": rng.randint(1, 20),
        "Supplier Name": "AI Enterprises",
        "Supplier Address": "1043 K-1 Ward No.8, Mehrauli New Delhi - 110030",
        "Supplier GSTIN": "07BLZPA4905P1ZF",
        "Ship To": "Amazon Seller Services Private Limited",
        "Ship To Address": "ESR Sohna Logistics Park, Village Rahaka, HARYANA",
        "Ship To GSTIN": "06BLZPA4905P1ZH",
        "Place of supply": "HARYANA (State/UT Code: 6)",
        "Place of delivery": "HARYANA (State/UT Code: 6)",
        "productDescription": f"Sample Product {number}",
        "quantity": rng.randint(1, 100),
        "unitValue": round(rng.uniform(100, 1100), 2),
        "hsnSacCode": "8301",
        "taxableValue": taxable_value,
        "taxRate": tax_rate,
        "taxValue": tax_value,
        "totalValue": round(taxable_value + tax_value, 2),
    }
    if field_names:
        return {name: values.get(name) or f"Sample {name}" for name in field_names}
    return values


__all__ = ["build_placeholder_fields"]
