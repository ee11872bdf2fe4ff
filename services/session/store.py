"""In-memory working set of uploaded invoices.

Holds one slot per uploaded document for the lifetime of the process; there
is no persistence. Each slot moves through idle -> processing -> success|error
independently of the others.
"""

import asyncio
import hashlib
import logging
import time
from collections.abc import Iterable, Mapping
from typing import Any, Literal

from pydantic import BaseModel

from services.dashboard.normalizer import normalize_record
from services.extraction.base import ExtractionProvider
from services.extraction.schema import InvoiceData, InvoiceRecord

logger = logging.getLogger(__name__)

ProcessingStatus = Literal["idle", "processing", "success", "error"]


class InvoiceFile(BaseModel):
    """An uploaded document and the outcome of its extraction.

    Attributes:
        id: Stable identifier derived from the document
        filename: Original filename
        media_type: MIME type of the upload
        content: Raw bytes (empty for records loaded without a document)
        size: Size of the upload in bytes
        status: Processing status
        record: Extracted record once status is success
        error: Error message once status is error
        duration_seconds: Extraction time for the last attempt
    """

    id: str
    filename: str
    media_type: str
    content: bytes = b""
    size: int = 0
    status: ProcessingStatus = "idle"
    record: InvoiceRecord | None = None
    error: str | None = None
    duration_seconds: float | None = None


def file_id_for(filename: str, content: bytes) -> str:
    """Identifier that is stable for the same document.

    Args:
        filename: Original filename
        content: Raw bytes

    Returns:
        Id built from name, size and a content digest
    """
    digest = hashlib.sha256(content).hexdigest()[:16]
    return f"{filename}-{len(content)}-{digest}"


class InvoiceStore:
    """Session store keyed by file id, in insertion order."""

    def __init__(self) -> None:
        """Initialize an empty store."""
        self._files: dict[str, InvoiceFile] = {}

    def add_file(self, filename: str, media_type: str, content: bytes) -> tuple[InvoiceFile, bool]:
        """Register an uploaded document as idle.

        Args:
            filename: Original filename
            media_type: MIME type of the upload
            content: Raw bytes

        Returns:
            The slot for the document and whether it was newly added
        """
        file_id = file_id_for(filename, content)
        existing = self._files.get(file_id)
        if existing is not None:
            return existing, False

        invoice_file = InvoiceFile(
            id=file_id,
            filename=filename,
            media_type=media_type,
            content=content,
            size=len(content),
        )
        self._files[file_id] = invoice_file
        logger.info(f"Added {filename} as {file_id}")
        return invoice_file, True

    def load_records(self, payloads: Iterable[Mapping[str, Any]]) -> list[InvoiceFile]:
        """Seed the store with records that were extracted elsewhere.

        Args:
            payloads: Extracted payloads, each optionally carrying an ``id``

        Returns:
            Slots that were added (payloads whose id already exists are skipped)
        """
        added: list[InvoiceFile] = []
        for payload in payloads:
            record = normalize_record(payload)
            if record.id in self._files:
                continue
            invoice_file = InvoiceFile(
                id=record.id,
                filename=f"{record.id}.json",
                media_type="application/json",
                status="success",
                record=record,
            )
            self._files[record.id] = invoice_file
            added.append(invoice_file)
        return added

    def get(self, file_id: str) -> InvoiceFile | None:
        return self._files.get(file_id)

    def remove(self, file_id: str) -> bool:
        """Drop a slot; returns False when the id is unknown."""
        return self._files.pop(file_id, None) is not None

    def requeue(self, file_id: str) -> InvoiceFile | None:
        """Put a failed file back to idle so the next run retries it.

        Returns:
            The slot, or None when the id is unknown
        """
        invoice_file = self._files.get(file_id)
        if invoice_file is not None and invoice_file.status == "error":
            invoice_file.status = "idle"
            invoice_file.error = None
        return invoice_file

    def clear(self) -> None:
        self._files.clear()

    def list_files(self) -> list[InvoiceFile]:
        return list(self._files.values())

    def successful_records(self) -> list[InvoiceRecord]:
        """Records of every successfully extracted file, in insertion order."""
        return [
            invoice_file.record
            for invoice_file in list(self._files.values())
            if invoice_file.status == "success" and invoice_file.record is not None
        ]

    async def process_pending(self, provider: ExtractionProvider) -> list[InvoiceFile]:
        """Extract every idle file concurrently.

        Slots are marked processing before the first await, so overlapping
        calls never pick the same file twice. A failure only affects its own
        slot.

        Args:
            provider: Extraction provider to call for each document

        Returns:
            The slots that were processed by this call
        """
        pending = [f for f in list(self._files.values()) if f.status == "idle"]
        for invoice_file in pending:
            invoice_file.status = "processing"
            invoice_file.error = None

        if pending:
            logger.info(f"Processing {len(pending)} documents with {provider.provider_name}")
            await asyncio.gather(*(self._process_one(provider, f) for f in pending))
        return pending

    async def _process_one(self, provider: ExtractionProvider, invoice_file: InvoiceFile) -> None:
        start = time.time()
        try:
            result = await asyncio.to_thread(
                provider.extract_invoice, invoice_file.content, invoice_file.media_type
            )
        except Exception as e:
            logger.exception(f"Extraction of {invoice_file.filename} raised: {e}")
            self._fail(invoice_file, f"Extraction failed: {str(e)}", start)
            return

        if not result.success or result.invoice_data is None:
            logger.warning(f"Extraction of {invoice_file.filename} failed: {result.error}")
            self._fail(invoice_file, result.error or "Could not extract data", start)
            return

        invoice_file.record = self._bind(result.invoice_data, invoice_file.id)
        invoice_file.status = "success"
        invoice_file.duration_seconds = time.time() - start
        logger.info(f"Extracted {invoice_file.filename} in {invoice_file.duration_seconds:.2f}s")

    @staticmethod
    def _bind(data: InvoiceData, file_id: str) -> InvoiceRecord:
        return normalize_record(data, record_id=file_id)

    @staticmethod
    def _fail(invoice_file: InvoiceFile, error: str, start: float) -> None:
        invoice_file.status = "error"
        invoice_file.error = error
        invoice_file.record = None
        invoice_file.duration_seconds = time.time() - start
