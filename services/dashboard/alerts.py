"""Alert detection over the current invoice snapshot.

Five independent heuristics, each a pure function of the records:

- duplicate: same (provider, invoice number, total) seen before
- new_provider: first invoice from a provider outside the validated set
- anomaly: invoice total well above the provider's own average
- missing_invoice: gap in the months a recurring provider has billed
- cost_trend: a concept whose price rose at every step and by more than a margin

Results are concatenated in pass order and then sorted by date, newest first.
The sort is stable, so alerts sharing a date keep their generation order.
"""

import logging
from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from services.dashboard.aggregation import ProviderAggregate
from services.dashboard.formatting import format_currency, month_name, round_percent
from services.dashboard.normalizer import aggregable_records, amount
from services.extraction.schema import InvoiceRecord

logger = logging.getLogger(__name__)

AlertKind = Literal["duplicate", "anomaly", "new_provider", "missing_invoice", "cost_trend"]

ALERT_KINDS: tuple[AlertKind, ...] = (
    "duplicate",
    "anomaly",
    "new_provider",
    "missing_invoice",
    "cost_trend",
)


class Alert(BaseModel):
    """A single dashboard alert, rebuilt on every recomputation."""

    model_config = ConfigDict(frozen=True)

    id: str
    kind: AlertKind
    title: str
    description: str
    date: date
    source_record_id: str | None = None


class AlertThresholds(BaseModel):
    """Tunable limits for the statistical passes."""

    # Anomaly if total > provider average * this
    anomaly_threshold: Decimal = Decimal("1.75")

    # Cost trend if first-to-last increase (%) is above this
    trend_threshold_percent: Decimal = Decimal(15)

    # Distinct months before a provider counts as recurring
    recurring_min_months: int = Field(3, ge=2)

    # Entries per concept before its trend is evaluated
    trend_min_entries: int = Field(3, ge=2)


DEFAULT_THRESHOLDS = AlertThresholds()


def detect_alerts(
    records: Sequence[InvoiceRecord],
    aggregates: dict[str, ProviderAggregate],
    validated_providers: frozenset[str],
    today: date,
    thresholds: AlertThresholds = DEFAULT_THRESHOLDS,
    currency: str = "EUR",
) -> list[Alert]:
    """Run every detection pass and return alerts newest first.

    Args:
        records: Full record snapshot in input order
        aggregates: Provider aggregates built from the same snapshot
        validated_providers: Allow-list of pre-vetted provider names
        today: Reference date for fallbacks and the missing-month cutoff
        thresholds: Detection limits
        currency: Currency code used in descriptions

    Returns:
        Alerts sorted by date descending
    """
    usable = aggregable_records(records)

    alerts: list[Alert] = []
    alerts.extend(detect_duplicates_and_new_providers(usable, validated_providers, today))
    alerts.extend(detect_anomalies(aggregates, today, thresholds, currency))
    alerts.extend(detect_missing_invoices(usable, today, thresholds))
    alerts.extend(detect_cost_trends(usable, today, thresholds))

    logger.debug(f"Detected {len(alerts)} alerts over {len(usable)} aggregable records")
    return sorted(alerts, key=lambda alert: alert.date, reverse=True)


def detect_duplicates_and_new_providers(
    records: Sequence[InvoiceRecord],
    validated_providers: frozenset[str],
    today: date,
) -> list[Alert]:
    """Single scan flagging repeated invoices and first-seen unvalidated providers."""
    alerts: list[Alert] = []
    seen_keys: set[tuple[str | None, str | None, Decimal]] = set()
    seen_providers: set[str] = set()

    for record in records:
        provider = record.provider or ""
        alert_date = record.issue_date or today

        if provider not in seen_providers and provider not in validated_providers:
            alerts.append(
                Alert(
                    id=f"new-{record.id}",
                    kind="new_provider",
                    title="New provider detected",
                    description=f'An invoice has been received from "{provider}".',
                    date=alert_date,
                    source_record_id=record.id,
                )
            )
        seen_providers.add(provider)

        key = (record.provider, record.invoice_number, amount(record.total))
        if key in seen_keys:
            number = record.invoice_number or "(no number)"
            alerts.append(
                Alert(
                    id=f"dup-{record.id}",
                    kind="duplicate",
                    title="Possible duplicate invoice",
                    description=f"Invoice #{number} from {provider} looks like a duplicate.",
                    date=alert_date,
                    source_record_id=record.id,
                )
            )
        else:
            seen_keys.add(key)

    return alerts


def detect_anomalies(
    aggregates: dict[str, ProviderAggregate],
    today: date,
    thresholds: AlertThresholds = DEFAULT_THRESHOLDS,
    currency: str = "EUR",
) -> list[Alert]:
    """Flag invoices above the provider average times the anomaly threshold.

    The average includes the invoice under test, so a provider with very few
    invoices rarely produces an anomaly.
    """
    alerts: list[Alert] = []

    for aggregate in aggregates.values():
        average = aggregate.average
        if average <= 0:
            continue
        limit = average * thresholds.anomaly_threshold

        for record in aggregate.records:
            total = record.total
            if not total or total <= limit:
                continue
            over = round_percent((total / average - 1) * 100)
            alerts.append(
                Alert(
                    id=f"anom-{record.id}",
                    kind="anomaly",
                    title="Cost anomaly",
                    description=(
                        f"Invoice from {aggregate.name} ({format_currency(total, currency)}) "
                        f"is {over}% above the average."
                    ),
                    date=record.issue_date or today,
                    source_record_id=record.id,
                )
            )

    return alerts


def detect_missing_invoices(
    records: Sequence[InvoiceRecord],
    today: date,
    thresholds: AlertThresholds = DEFAULT_THRESHOLDS,
) -> list[Alert]:
    """Report gaps in the months a recurring provider has invoiced.

    Months are compared by month-of-year only; records from different years
    fall into the same bucket.
    """
    months_by_provider: dict[str, set[int]] = {}
    for record in records:
        if record.issue_date is None:
            continue
        months_by_provider.setdefault(record.provider or "", set()).add(
            record.issue_date.month - 1
        )

    current_month = today.month - 1
    alerts: list[Alert] = []

    for provider, months in months_by_provider.items():
        if len(months) < thresholds.recurring_min_months:
            continue
        for month in range(min(months), max(months) + 1):
            if month in months or month >= current_month:
                continue
            alerts.append(
                Alert(
                    id=f"miss-{provider}-{month}",
                    kind="missing_invoice",
                    title="Possible missing invoice",
                    description=(
                        f"No invoice has been received from {provider} "
                        f"for {month_name(month)}."
                    ),
                    date=today,
                )
            )

    return alerts


def detect_cost_trends(
    records: Sequence[InvoiceRecord],
    today: date,
    thresholds: AlertThresholds = DEFAULT_THRESHOLDS,
) -> list[Alert]:
    """Flag concepts whose price rose at every step by more than the threshold.

    One flat or falling step anywhere in the history suppresses the alert.
    """
    dated_by_provider: dict[str, list[InvoiceRecord]] = {}
    for record in records:
        if record.issue_date is None:
            continue
        dated_by_provider.setdefault(record.provider or "", []).append(record)

    alerts: list[Alert] = []

    for provider, provider_records in dated_by_provider.items():
        if len(provider_records) < thresholds.trend_min_entries:
            continue

        history: dict[str, list[tuple[date, Decimal, str]]] = {}
        for record in provider_records:
            for item in record.line_items:
                if not item.description:
                    continue
                history.setdefault(item.description, []).append(
                    (record.issue_date or today, amount(item.total_price), record.id)
                )

        for concept, entries in history.items():
            if len(entries) < thresholds.trend_min_entries:
                continue
            entries = sorted(entries, key=lambda entry: entry[0])
            totals = [entry[1] for entry in entries]

            if not all(later > earlier for earlier, later in zip(totals, totals[1:])):
                continue

            first, last = totals[0], totals[-1]
            if first <= 0:
                continue
            increase = (last - first) / first * 100
            if increase <= thresholds.trend_threshold_percent:
                continue

            last_date, _, last_record_id = entries[-1]
            alerts.append(
                Alert(
                    id=f"trend-{provider}-{concept}",
                    kind="cost_trend",
                    title="Rising cost trend",
                    description=(
                        f'The cost of "{concept}" from {provider} has risen '
                        f"{round_percent(increase)}%."
                    ),
                    date=last_date,
                    source_record_id=last_record_id,
                )
            )

    return alerts
