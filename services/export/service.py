"""Record filtering and CSV export.

Filters mirror the search box of the invoice list: text fields match by
case-insensitive substring, dates by inclusive range on the issue date.
"""

import csv
import io
from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from typing import Any

from pydantic import BaseModel

from services.extraction.schema import InvoiceRecord

ESSENTIAL_HEADERS = [
    "Provider",
    "Tax ID",
    "Invoice Number",
    "Issue Date",
    "Due Date",
    "Taxable Base",
    "Tax",
    "Invoice Total",
]

LINE_ITEM_HEADERS = [
    "Line Item - Description",
    "Line Item - Quantity",
    "Line Item - Unit Price",
    "Line Item - Total",
]


class RecordFilter(BaseModel):
    """Search criteria for the invoice list. Empty criteria match everything."""

    provider: str = ""
    tax_id: str = ""
    invoice_number: str = ""
    date_from: date | None = None
    date_to: date | None = None

    def matches(self, record: InvoiceRecord) -> bool:
        if not _contains(record.provider, self.provider):
            return False
        if not _contains(record.tax_id, self.tax_id):
            return False
        if not _contains(record.invoice_number, self.invoice_number):
            return False
        issued = record.issue_date
        if self.date_from is not None and (issued is None or issued < self.date_from):
            return False
        if self.date_to is not None and (issued is None or issued > self.date_to):
            return False
        return True


def _contains(value: str | None, needle: str) -> bool:
    return needle.lower() in (value or "").lower()


def filter_records(
    records: Iterable[InvoiceRecord], record_filter: RecordFilter | None = None
) -> list[InvoiceRecord]:
    """Apply a filter, preserving order."""
    if record_filter is None:
        return list(records)
    return [record for record in records if record_filter.matches(record)]


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


def _header_cells(record: InvoiceRecord) -> list[str]:
    return [
        _cell(record.provider),
        _cell(record.tax_id),
        _cell(record.invoice_number),
        _cell(record.issue_date),
        _cell(record.due_date),
        _cell(record.taxable_base),
        _cell(record.tax_amount),
        _cell(record.total),
    ]


def _render(rows: list[list[str]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerows(rows)
    return buffer.getvalue()


def export_essential_csv(records: Iterable[InvoiceRecord]) -> str:
    """One row per invoice with the header fields.

    Args:
        records: Records to export

    Returns:
        CSV text; unknown values are empty cells
    """
    rows = [list(ESSENTIAL_HEADERS)]
    rows.extend(_header_cells(record) for record in records)
    return _render(rows)


def export_detailed_csv(records: Iterable[InvoiceRecord]) -> str:
    """One row per line item, repeating the invoice header fields.

    Invoices without line items still get one row with empty item columns.

    Args:
        records: Records to export

    Returns:
        CSV text
    """
    rows = [ESSENTIAL_HEADERS + LINE_ITEM_HEADERS]
    for record in records:
        header = _header_cells(record)
        if not record.line_items:
            rows.append(header + ["", "", "", ""])
            continue
        for item in record.line_items:
            rows.append(
                header
                + [
                    _cell(item.description),
                    _cell(item.quantity),
                    _cell(item.unit_price),
                    _cell(item.total_price),
                ]
            )
    return _render(rows)
