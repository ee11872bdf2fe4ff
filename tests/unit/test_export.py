"""Unit tests for record filtering and CSV export."""

import csv
import io
from datetime import date

import pytest

from services.dashboard.normalizer import normalize_record
from services.export.service import (
    ESSENTIAL_HEADERS,
    LINE_ITEM_HEADERS,
    RecordFilter,
    export_detailed_csv,
    export_essential_csv,
    filter_records,
)
from services.extraction.schema import InvoiceRecord


@pytest.fixture
def records() -> list[InvoiceRecord]:
    return [
        normalize_record(
            {
                "provider": "Maersk",
                "taxId": "A12345678",
                "invoiceNumber": "INV-2024-001",
                "issueDate": "2024-01-15",
                "dueDate": "2024-02-14",
                "total": "7500.50",
                "taxableBase": "6198.76",
                "taxAmount": "1301.74",
                "lineItems": [
                    {"description": "Freight", "quantity": 1, "unitPrice": 6000, "totalPrice": 6000},
                    {"description": "Port Fees, terminal", "totalPrice": "198.76"},
                ],
            },
            "m1",
        ),
        normalize_record(
            {"provider": "MSC", "invoiceNumber": "MSC-77", "issueDate": "2024-04-05"}, "s1"
        ),
        normalize_record({"provider": "COSCO", "invoiceNumber": "C-1"}, "c1"),
    ]


def _rows(text: str) -> list[list[str]]:
    return list(csv.reader(io.StringIO(text)))


class TestRecordFilter:
    def test_empty_filter_matches_everything(self, records: list[InvoiceRecord]) -> None:
        assert filter_records(records, RecordFilter()) == records
        assert filter_records(records) == records

    def test_text_fields_match_case_insensitive_substring(
        self, records: list[InvoiceRecord]
    ) -> None:
        assert [r.id for r in filter_records(records, RecordFilter(provider="mae"))] == ["m1"]
        assert [r.id for r in filter_records(records, RecordFilter(tax_id="a123"))] == ["m1"]
        assert [r.id for r in filter_records(records, RecordFilter(invoice_number="-7"))] == [
            "s1"
        ]

    def test_date_range_is_inclusive(self, records: list[InvoiceRecord]) -> None:
        record_filter = RecordFilter(date_from=date(2024, 1, 15), date_to=date(2024, 4, 5))

        assert [r.id for r in filter_records(records, record_filter)] == ["m1", "s1"]

    def test_undated_records_fail_any_date_bound(self, records: list[InvoiceRecord]) -> None:
        record_filter = RecordFilter(date_to=date(2030, 1, 1))

        assert "c1" not in [r.id for r in filter_records(records, record_filter)]

    def test_criteria_combine(self, records: list[InvoiceRecord]) -> None:
        record_filter = RecordFilter(provider="m", date_from=date(2024, 2, 1))

        assert [r.id for r in filter_records(records, record_filter)] == ["s1"]


class TestCsvExport:
    def test_essential_layout(self, records: list[InvoiceRecord]) -> None:
        rows = _rows(export_essential_csv(records))

        assert rows[0] == ESSENTIAL_HEADERS
        assert rows[1] == [
            "Maersk",
            "A12345678",
            "INV-2024-001",
            "2024-01-15",
            "2024-02-14",
            "6198.76",
            "1301.74",
            "7500.50",
        ]
        assert rows[3] == ["COSCO", "", "C-1", "", "", "", "", ""]
        assert len(rows) == 4

    def test_every_cell_is_quoted(self, records: list[InvoiceRecord]) -> None:
        first_line = export_essential_csv(records).splitlines()[0]

        assert first_line.startswith('"Provider","Tax ID"')

    def test_detailed_layout_has_one_row_per_line_item(
        self, records: list[InvoiceRecord]
    ) -> None:
        rows = _rows(export_detailed_csv(records))

        assert rows[0] == ESSENTIAL_HEADERS + LINE_ITEM_HEADERS
        assert len(rows) == 1 + 2 + 1 + 1
        assert rows[1][0] == "Maersk"
        assert rows[1][8:] == ["Freight", "1", "6000", "6000"]
        assert rows[2][8:] == ["Port Fees, terminal", "", "", "198.76"]
        assert rows[3][0] == "MSC"
        assert rows[3][8:] == ["", "", "", ""]

    def test_empty_export_has_header_only(self) -> None:
        assert _rows(export_essential_csv([])) == [ESSENTIAL_HEADERS]
