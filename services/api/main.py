"""FastAPI application for invoice insights.

Endpoints:
- Health and readiness checks for Kubernetes
- Multi-file upload and concurrent extraction into the session store
- Filtered listing and CSV export of extracted invoices
- Dashboard view model (aggregates, alerts, monthly series)
- Streaming analysis assistant (Server-Sent Events)
- Prometheus metrics for monitoring

Based on FastAPI best practices:
https://fastapi.tiangolo.com/
"""

import logging
import time
from collections.abc import Iterator
from datetime import date
from decimal import Decimal
from typing import Literal

from fastapi import (
    Depends,
    FastAPI,
    File,
    HTTPException,
    Query,
    Request,
    Response,
    UploadFile,
    status,
)
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from services.api import metrics
from services.chat.service import (
    ChatBusyError,
    ChatMessage,
    ChatSession,
    OpenAIChatProvider,
    format_sse,
)
from services.dashboard.alerts import Alert, AlertThresholds
from services.dashboard.normalizer import aggregable_records
from services.dashboard.sample_data import SAMPLE_INVOICES
from services.dashboard.service import DashboardCache, DashboardView
from services.dashboard.timeseries import SeriesPoint
from services.export.service import (
    RecordFilter,
    export_detailed_csv,
    export_essential_csv,
    filter_records,
)
from services.extraction.base import is_supported_media_type
from services.extraction.factory import create_extraction_service
from services.extraction.schema import InvoiceRecord
from services.session.store import InvoiceFile, InvoiceStore, ProcessingStatus
from services.shared.config import get_settings

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Invoice Insights",
    description="Invoice extraction, spend dashboard and analysis assistant",
    version=settings.service_version,
)

extraction_service = create_extraction_service(settings)
chat_session = ChatSession(OpenAIChatProvider(settings))
invoice_store = InvoiceStore()
dashboard_cache = DashboardCache(
    settings.validated_provider_set,
    thresholds=AlertThresholds(
        anomaly_threshold=settings.anomaly_threshold,
        trend_threshold_percent=settings.trend_threshold_percent,
        recurring_min_months=settings.recurring_min_months,
        trend_min_entries=settings.trend_min_entries,
    ),
    currency=settings.currency,
)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Middleware to collect request metrics.

    Tracks:
    - Request count by method, endpoint, and status
    - Request duration by method and endpoint
    """
    if request.url.path == "/metrics":
        return await call_next(request)

    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    metrics.http_requests_total.labels(
        method=request.method,
        endpoint=request.url.path,
        status=response.status_code,
    ).inc()

    metrics.http_request_duration_seconds.labels(
        method=request.method,
        endpoint=request.url.path,
    ).observe(duration)

    return response


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    service: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool
    extraction_available: bool
    chat_available: bool


class InvoiceFileResponse(BaseModel):
    """Public view of a session slot (document bytes omitted)."""

    id: str
    filename: str
    media_type: str
    size: int
    status: ProcessingStatus
    error: str | None = None
    record: InvoiceRecord | None = None

    @classmethod
    def from_file(cls, invoice_file: InvoiceFile) -> "InvoiceFileResponse":
        return cls(
            id=invoice_file.id,
            filename=invoice_file.filename,
            media_type=invoice_file.media_type,
            size=invoice_file.size,
            status=invoice_file.status,
            error=invoice_file.error,
            record=invoice_file.record,
        )


class UploadResponse(BaseModel):
    """Multi-file upload response."""

    added: list[InvoiceFileResponse]
    skipped: list[str]


class ProcessResponse(BaseModel):
    """Outcome of one processing run."""

    processed: int
    succeeded: int
    failed: int
    files: list[InvoiceFileResponse]


class ProviderSummary(BaseModel):
    name: str
    total_billed: Decimal
    record_count: int
    validated: bool


class DashboardResponse(BaseModel):
    """Dashboard view model as served to the presentation layer."""

    total_billed: Decimal
    processed_count: int
    provider_aggregates: list[ProviderSummary]
    alerts: list[Alert]
    unvalidated_provider_count: int
    provider_time_series: dict[str, list[SeriesPoint]]
    concept_time_series: dict[str, list[SeriesPoint]]
    providers: list[str]
    concepts: list[str]

    @classmethod
    def from_view(cls, view: DashboardView, validated: frozenset[str]) -> "DashboardResponse":
        return cls(
            total_billed=view.total_billed,
            processed_count=view.processed_count,
            provider_aggregates=[
                ProviderSummary(
                    name=agg.name,
                    total_billed=agg.total_billed,
                    record_count=agg.record_count,
                    validated=agg.name in validated,
                )
                for agg in view.provider_aggregates
            ],
            alerts=view.alerts,
            unvalidated_provider_count=view.unvalidated_provider_count,
            provider_time_series=view.provider_time_series,
            concept_time_series=view.concept_time_series,
            providers=view.providers,
            concepts=view.concepts,
        )


class ChatRequest(BaseModel):
    """Question for the analysis assistant."""

    message: str
    include_context: bool = True


class ChatTranscriptResponse(BaseModel):
    messages: list[ChatMessage]
    busy: bool
    error: str | None = None


def _record_filter(
    provider: str = Query("", description="Provider name contains (case-insensitive)"),
    tax_id: str = Query("", description="Tax ID contains (case-insensitive)"),
    invoice_number: str = Query("", description="Invoice number contains (case-insensitive)"),
    date_from: date | None = Query(None, description="Issued on or after"),
    date_to: date | None = Query(None, description="Issued on or before"),
) -> RecordFilter:
    return RecordFilter(
        provider=provider,
        tax_id=tax_id,
        invoice_number=invoice_number,
        date_from=date_from,
        date_to=date_to,
    )


@app.get("/health", response_model=HealthResponse, tags=["Health"])
def health_check() -> HealthResponse:
    """Health check endpoint for liveness checks.

    Returns:
        Health status information
    """
    return HealthResponse(
        status="healthy", version=settings.service_version, service=settings.service_name
    )


@app.get("/ready", response_model=ReadinessResponse, tags=["Health"])
def readiness_check() -> ReadinessResponse:
    """Readiness check endpoint for Kubernetes readiness checks.

    Returns:
        Readiness status with availability of the external services
    """
    return ReadinessResponse(
        ready=True,
        extraction_available=extraction_service.is_available(),
        chat_available=chat_session.provider.is_available(),
    )


@app.get("/metrics", tags=["Monitoring"])
def get_metrics() -> Response:
    """Prometheus metrics endpoint.

    Returns:
        Prometheus metrics in text format
    """
    metrics_data, content_type = metrics.get_metrics()
    return Response(content=metrics_data, media_type=content_type)


@app.post("/api/v1/invoices/upload", response_model=UploadResponse, tags=["Invoices"])
async def upload_invoices(
    files: list[UploadFile] = File(..., description="Invoice documents (PDF or image)"),  # noqa: B008
) -> UploadResponse:
    """Add documents to the session as idle slots.

    Re-uploading an identical document is a no-op and is reported in ``skipped``.

    Raises:
        HTTPException: 400 for a missing name, unsupported type or empty file;
            413 when a file exceeds the configured size limit
    """
    accepted: list[tuple[str, str, bytes]] = []
    for upload in files:
        if not upload.filename:
            metrics.documents_uploaded_total.labels(status="rejected").inc()
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="No filename provided"
            )

        if not is_supported_media_type(upload.content_type):
            metrics.documents_uploaded_total.labels(status="rejected").inc()
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=(
                    f"Invalid file type: {upload.content_type}. "
                    "Only images and PDF documents are supported."
                ),
            )

        content = await upload.read()
        if not content:
            metrics.documents_uploaded_total.labels(status="rejected").inc()
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail=f"Empty file: {upload.filename}"
            )
        if len(content) > settings.max_upload_bytes:
            metrics.documents_uploaded_total.labels(status="rejected").inc()
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=f"File too large: {upload.filename}",
            )

        accepted.append((upload.filename, upload.content_type or "", content))

    added: list[InvoiceFileResponse] = []
    skipped: list[str] = []
    for filename, content_type, content in accepted:
        metrics.document_upload_size_bytes.observe(len(content))
        invoice_file, is_new = invoice_store.add_file(filename, content_type, content)
        if is_new:
            metrics.documents_uploaded_total.labels(status="accepted").inc()
            added.append(InvoiceFileResponse.from_file(invoice_file))
        else:
            metrics.documents_uploaded_total.labels(status="duplicate").inc()
            skipped.append(filename)

    return UploadResponse(added=added, skipped=skipped)


@app.post("/api/v1/invoices/process", response_model=ProcessResponse, tags=["Invoices"])
async def process_invoices() -> ProcessResponse:
    """Extract every idle document concurrently.

    Each document succeeds or fails on its own; failures are reported on the
    file and never fail the request.
    """
    processed = await invoice_store.process_pending(extraction_service)

    for invoice_file in processed:
        metrics.extraction_requests_total.labels(
            status="success" if invoice_file.status == "success" else "failed"
        ).inc()
        if invoice_file.duration_seconds is not None:
            metrics.extraction_processing_duration_seconds.observe(invoice_file.duration_seconds)

    succeeded = sum(1 for f in processed if f.status == "success")
    return ProcessResponse(
        processed=len(processed),
        succeeded=succeeded,
        failed=len(processed) - succeeded,
        files=[InvoiceFileResponse.from_file(f) for f in processed],
    )


@app.get("/api/v1/invoices", response_model=list[InvoiceFileResponse], tags=["Invoices"])
def list_invoices(
    record_filter: RecordFilter = Depends(_record_filter),  # noqa: B008
) -> list[InvoiceFileResponse]:
    """List session files.

    Without filters every file is returned whatever its status. With any
    filter, only successfully extracted invoices that match are returned.
    """
    files = invoice_store.list_files()
    if record_filter == RecordFilter():
        return [InvoiceFileResponse.from_file(f) for f in files]
    return [
        InvoiceFileResponse.from_file(f)
        for f in files
        if f.status == "success" and f.record is not None and record_filter.matches(f.record)
    ]


@app.get("/api/v1/invoices/export.csv", tags=["Invoices"])
def export_invoices(
    layout: Literal["essential", "detailed"] = Query("essential"),
    record_filter: RecordFilter = Depends(_record_filter),  # noqa: B008
) -> Response:
    """Download the filtered, successfully extracted invoices as CSV."""
    records = filter_records(invoice_store.successful_records(), record_filter)

    if layout == "detailed":
        content = export_detailed_csv(records)
    else:
        content = export_essential_csv(records)

    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="invoices_{layout}.csv"'},
    )


@app.post("/api/v1/invoices/sample", response_model=list[InvoiceFileResponse], tags=["Invoices"])
def load_sample_invoices() -> list[InvoiceFileResponse]:
    """Load the bundled demo invoices into the session."""
    added = invoice_store.load_records(SAMPLE_INVOICES)
    logger.info(f"Loaded {len(added)} sample invoices")
    return [InvoiceFileResponse.from_file(f) for f in added]


@app.post(
    "/api/v1/invoices/{file_id}/retry", response_model=InvoiceFileResponse, tags=["Invoices"]
)
def retry_invoice(file_id: str) -> InvoiceFileResponse:
    """Queue a failed document for the next processing run."""
    invoice_file = invoice_store.requeue(file_id)
    if invoice_file is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invoice not found")
    return InvoiceFileResponse.from_file(invoice_file)


@app.delete(
    "/api/v1/invoices/{file_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Invoices"]
)
def delete_invoice(file_id: str) -> Response:
    """Remove a document from the session."""
    if not invoice_store.remove(file_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invoice not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/api/v1/dashboard", response_model=DashboardResponse, tags=["Dashboard"])
def get_dashboard() -> DashboardResponse:
    """Current dashboard, rebuilt when the set of extracted invoices changes."""
    view = dashboard_cache.get(invoice_store.successful_records())
    return DashboardResponse.from_view(view, settings.validated_provider_set)


@app.get("/api/v1/chat", response_model=ChatTranscriptResponse, tags=["Assistant"])
def get_chat() -> ChatTranscriptResponse:
    """Current assistant transcript."""
    return ChatTranscriptResponse(
        messages=chat_session.transcript,
        busy=chat_session.busy,
        error=chat_session.error,
    )


@app.delete("/api/v1/chat", status_code=status.HTTP_204_NO_CONTENT, tags=["Assistant"])
def reset_chat() -> Response:
    """Start a new conversation."""
    try:
        chat_session.reset()
    except ChatBusyError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/api/v1/chat", tags=["Assistant"])
def chat(request: ChatRequest) -> StreamingResponse:
    """Ask the analysis assistant; the reply is streamed as Server-Sent Events.

    Each event is ``data: {"text": ...}``. A failure once streaming has begun
    is sent as a final ``data: {"error": ...}`` event; the partial reply stays
    in the transcript.

    Raises:
        HTTPException: 400 for an empty message, 409 while another reply is
            streaming, 503 when the assistant is not configured
    """
    if not request.message.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message is required.")

    if not chat_session.provider.is_available():
        metrics.chat_requests_total.labels(status="failed").inc()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Assistant is not configured on the server.",
        )

    context = (
        aggregable_records(invoice_store.successful_records()) if request.include_context else []
    )

    try:
        reply = chat_session.send(request.message, context)
    except ChatBusyError as e:
        metrics.chat_requests_total.labels(status="rejected").inc()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e

    def event_stream() -> Iterator[str]:
        try:
            for chunk in reply:
                yield format_sse({"text": chunk})
            if chat_session.error:
                metrics.chat_requests_total.labels(status="failed").inc()
                yield format_sse({"error": chat_session.error})
            else:
                metrics.chat_requests_total.labels(status="success").inc()
        finally:
            reply.close()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
