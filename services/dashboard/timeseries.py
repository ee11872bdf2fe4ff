"""Monthly spend series for the provider and concept charts."""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from services.dashboard.formatting import month_label
from services.dashboard.normalizer import ZERO, aggregable_records, amount
from services.extraction.schema import InvoiceRecord


@dataclass(frozen=True)
class SeriesPoint:
    label: str
    year: int
    month: int
    amount: Decimal


def _bucket(
    series: dict[str, dict[tuple[int, int], Decimal]],
    key: str,
    year: int,
    month: int,
    value: Decimal,
) -> None:
    buckets = series.setdefault(key, {})
    buckets[(year, month)] = buckets.get((year, month), ZERO) + value


def _to_points(series: dict[str, dict[tuple[int, int], Decimal]]) -> dict[str, list[SeriesPoint]]:
    result: dict[str, list[SeriesPoint]] = {}
    for key, buckets in series.items():
        result[key] = [
            SeriesPoint(
                label=month_label(date(year, month, 1)),
                year=year,
                month=month,
                amount=total,
            )
            for (year, month), total in sorted(buckets.items())
        ]
    return result


def build_provider_series(records: Iterable[InvoiceRecord]) -> dict[str, list[SeriesPoint]]:
    """Sum invoice totals per provider and calendar month.

    Args:
        records: Record snapshot

    Returns:
        Provider name to chronologically sorted points, providers in first-seen order
    """
    series: dict[str, dict[tuple[int, int], Decimal]] = {}
    for record in aggregable_records(records):
        if record.issue_date is None:
            continue
        issued = record.issue_date
        _bucket(series, record.provider or "", issued.year, issued.month, amount(record.total))
    return _to_points(series)


def build_concept_series(records: Iterable[InvoiceRecord]) -> dict[str, list[SeriesPoint]]:
    """Sum line item totals per concept and calendar month, across all providers.

    Args:
        records: Record snapshot

    Returns:
        Concept to chronologically sorted points, concepts in first-seen order
    """
    series: dict[str, dict[tuple[int, int], Decimal]] = {}
    for record in aggregable_records(records):
        if record.issue_date is None:
            continue
        issued = record.issue_date
        for item in record.line_items:
            if not item.description:
                continue
            _bucket(
                series, item.description, issued.year, issued.month, amount(item.total_price)
            )
    return _to_points(series)
