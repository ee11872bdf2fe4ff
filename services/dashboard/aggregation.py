"""Provider aggregation pass."""

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal

from services.dashboard.normalizer import ZERO, aggregable_records, amount
from services.extraction.schema import InvoiceRecord


@dataclass(frozen=True)
class ProviderAggregate:
    """Spend totals for one provider.

    ``records`` references the input snapshot; it is rebuilt on every run.
    """

    name: str
    total_billed: Decimal
    record_count: int
    records: tuple[InvoiceRecord, ...]

    @property
    def average(self) -> Decimal:
        return self.total_billed / self.record_count if self.record_count else ZERO


@dataclass(frozen=True)
class AggregationSummary:
    aggregates: dict[str, ProviderAggregate] = field(default_factory=dict)
    total_billed: Decimal = ZERO
    unvalidated_provider_count: int = 0


def aggregate_by_provider(records: Iterable[InvoiceRecord]) -> dict[str, ProviderAggregate]:
    """Group aggregable records by exact provider name.

    Args:
        records: Record snapshot in input order

    Returns:
        Mapping of provider name to aggregate, in first-seen order
    """
    totals: dict[str, Decimal] = {}
    grouped: dict[str, list[InvoiceRecord]] = {}

    for record in aggregable_records(records):
        name = record.provider or ""
        totals[name] = totals.get(name, ZERO) + amount(record.total)
        grouped.setdefault(name, []).append(record)

    return {
        name: ProviderAggregate(
            name=name,
            total_billed=totals[name],
            record_count=len(members),
            records=tuple(members),
        )
        for name, members in grouped.items()
    }


def summarize(
    records: Iterable[InvoiceRecord], validated_providers: frozenset[str]
) -> AggregationSummary:
    """Aggregate records and compute the headline figures.

    Args:
        records: Record snapshot
        validated_providers: Allow-list of pre-vetted provider names

    Returns:
        Aggregates plus overall total and count of unvalidated providers
    """
    aggregates = aggregate_by_provider(records)
    total = sum((agg.total_billed for agg in aggregates.values()), ZERO)
    unvalidated = sum(1 for name in aggregates if name not in validated_providers)
    return AggregationSummary(
        aggregates=aggregates,
        total_billed=total,
        unvalidated_provider_count=unvalidated,
    )
