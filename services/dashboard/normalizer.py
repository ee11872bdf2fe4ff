"""Record normalization for the dashboard passes.

Turns whatever the extraction step produced into an ``InvoiceRecord`` that the
aggregation and alerting passes can read without guarding every field.
"""

import uuid
from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any

from services.extraction.schema import InvoiceData, InvoiceRecord

ZERO = Decimal(0)


def normalize_record(
    raw: Mapping[str, Any] | InvoiceData, record_id: str | None = None
) -> InvoiceRecord:
    """Build an InvoiceRecord from a raw extracted payload.

    Missing or unreadable fields become None; nothing here raises on sparse
    input. The id comes from ``record_id``, then the payload, then a fresh uuid.

    Args:
        raw: Extracted payload (dict with snake_case or camelCase keys) or model
        record_id: Identifier of the source document

    Returns:
        Normalized record
    """
    if isinstance(raw, InvoiceData):
        payload = raw.model_dump()
    else:
        payload = dict(raw)

    identifier = record_id or payload.get("id")
    if not isinstance(identifier, str) or not identifier.strip():
        identifier = uuid.uuid4().hex
    payload["id"] = identifier

    return InvoiceRecord.model_validate(payload)


def is_aggregable(record: InvoiceData) -> bool:
    """A record can be grouped only when it names its provider."""
    return bool(record.provider and record.provider.strip())


def amount(value: Decimal | None) -> Decimal:
    """Unknown amounts count as zero in sums."""
    return ZERO if value is None else value


def aggregable_records(records: Iterable[InvoiceRecord]) -> list[InvoiceRecord]:
    """Keep records with a provider, preserving input order."""
    return [record for record in records if is_aggregable(record)]
