"""Dashboard view model.

``build_dashboard`` is a pure rebuild: the whole view is derived from the
record snapshot it receives, with no state carried between calls.
``DashboardCache`` only skips a rebuild when the snapshot has not changed.
"""

import hashlib
import logging
import time
from collections.abc import Sequence
from datetime import date
from decimal import Decimal

from prometheus_client import Gauge, Histogram
from pydantic import BaseModel, ConfigDict

from services.dashboard.aggregation import ProviderAggregate, summarize
from services.dashboard.alerts import (
    ALERT_KINDS,
    DEFAULT_THRESHOLDS,
    Alert,
    AlertThresholds,
    detect_alerts,
)
from services.dashboard.normalizer import ZERO
from services.dashboard.timeseries import (
    SeriesPoint,
    build_concept_series,
    build_provider_series,
)
from services.extraction.schema import InvoiceRecord

logger = logging.getLogger(__name__)


# Prometheus metrics for dashboard rebuilds
dashboard_rebuild_duration_seconds = Histogram(
    "dashboard_rebuild_duration_seconds",
    "Time spent rebuilding the dashboard view model",
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0),
)

dashboard_active_alerts = Gauge(
    "dashboard_active_alerts",
    "Alerts in the most recent dashboard view",
    ["kind"],
)


class DashboardView(BaseModel):
    """Read-only structure consumed by the presentation layer."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    total_billed: Decimal = ZERO
    processed_count: int = 0
    provider_aggregates: list[ProviderAggregate] = []
    alerts: list[Alert] = []
    unvalidated_provider_count: int = 0
    provider_time_series: dict[str, list[SeriesPoint]] = {}
    concept_time_series: dict[str, list[SeriesPoint]] = {}
    providers: list[str] = []
    concepts: list[str] = []


def build_dashboard(
    records: Sequence[InvoiceRecord],
    validated_providers: frozenset[str],
    today: date | None = None,
    thresholds: AlertThresholds = DEFAULT_THRESHOLDS,
    currency: str = "EUR",
) -> DashboardView:
    """Compose aggregates, alerts and time series for a record snapshot.

    Args:
        records: Every successfully extracted record, in arrival order
        validated_providers: Allow-list of pre-vetted provider names
        today: Reference date for alert fallbacks (defaults to the current date)
        thresholds: Alert detection limits
        currency: Currency code used in alert descriptions

    Returns:
        Dashboard view model
    """
    if not records:
        return DashboardView()

    today = today or date.today()
    summary = summarize(records, validated_providers)
    aggregates = summary.aggregates

    alerts = detect_alerts(
        records,
        aggregates,
        validated_providers,
        today,
        thresholds=thresholds,
        currency=currency,
    )

    concept_series = build_concept_series(records)

    return DashboardView(
        total_billed=summary.total_billed,
        processed_count=len(records),
        provider_aggregates=sorted(
            aggregates.values(), key=lambda agg: agg.total_billed, reverse=True
        ),
        alerts=alerts,
        unvalidated_provider_count=summary.unvalidated_provider_count,
        provider_time_series=build_provider_series(records),
        concept_time_series=concept_series,
        providers=list(aggregates),
        concepts=list(concept_series),
    )


def snapshot_fingerprint(records: Sequence[InvoiceRecord]) -> str:
    """Digest of the snapshot content, used to detect unchanged input."""
    digest = hashlib.sha256()
    for record in records:
        digest.update(record.model_dump_json().encode("utf-8"))
        digest.update(b"\x00")
    return digest.hexdigest()


class DashboardCache:
    """Remembers the last view and the snapshot it was built from."""

    def __init__(
        self,
        validated_providers: frozenset[str],
        thresholds: AlertThresholds = DEFAULT_THRESHOLDS,
        currency: str = "EUR",
    ) -> None:
        """Initialize cache.

        Args:
            validated_providers: Allow-list passed to every rebuild
            thresholds: Alert detection limits
            currency: Currency code used in alert descriptions
        """
        self.validated_providers = validated_providers
        self.thresholds = thresholds
        self.currency = currency
        self._key: tuple[str, date] | None = None
        self._view: DashboardView | None = None

    def get(self, records: Sequence[InvoiceRecord], today: date | None = None) -> DashboardView:
        """Return the view for ``records``, rebuilding only when they changed."""
        today = today or date.today()
        key = (snapshot_fingerprint(records), today)
        if self._view is not None and key == self._key:
            return self._view

        start = time.time()
        view = build_dashboard(
            records,
            self.validated_providers,
            today=today,
            thresholds=self.thresholds,
            currency=self.currency,
        )
        duration = time.time() - start
        dashboard_rebuild_duration_seconds.observe(duration)
        for kind in ALERT_KINDS:
            dashboard_active_alerts.labels(kind=kind).set(
                sum(1 for alert in view.alerts if alert.kind == kind)
            )

        logger.info(
            f"Dashboard rebuilt from {len(records)} records "
            f"({len(view.alerts)} alerts) in {duration:.3f}s"
        )
        self._key = key
        self._view = view
        return view
