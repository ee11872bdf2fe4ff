"""Unit tests for the in-memory invoice session store.

Processing is async; tests drive it with ``asyncio.run``.
"""

import asyncio
import threading

import pytest

from services.dashboard.sample_data import SAMPLE_INVOICES
from services.extraction.base import ExtractionProvider, ExtractionResult
from services.extraction.schema import InvoiceData
from services.session.store import InvoiceStore, file_id_for
from services.shared.config import Settings


class FakeProvider(ExtractionProvider):
    """Returns a fixed invoice unless the document content says otherwise."""

    def __init__(self) -> None:
        super().__init__(Settings(_env_file=None))
        self.calls: list[bytes] = []

    @property
    def provider_name(self) -> str:
        return "fake"

    def is_available(self) -> bool:
        return True

    def extract_invoice(self, content: bytes, media_type: str) -> ExtractionResult:
        self.calls.append(content)
        if content.startswith(b"bad"):
            return self._failure("Could not read invoice")
        if content.startswith(b"boom"):
            raise RuntimeError("provider crashed")
        return ExtractionResult(
            invoice_data=InvoiceData(provider="Maersk", invoice_number=content.decode()),
            success=True,
            provider=self.provider_name,
        )


@pytest.fixture
def store() -> InvoiceStore:
    return InvoiceStore()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


def test_file_id_is_stable() -> None:
    assert file_id_for("a.pdf", b"abc") == file_id_for("a.pdf", b"abc")
    assert file_id_for("a.pdf", b"abc") != file_id_for("a.pdf", b"abd")
    assert file_id_for("a.pdf", b"abc").startswith("a.pdf-3-")


def test_add_file_starts_idle(store: InvoiceStore) -> None:
    invoice_file, is_new = store.add_file("a.png", "image/png", b"INV-1")

    assert is_new is True
    assert invoice_file.status == "idle"
    assert invoice_file.size == 5
    assert store.list_files() == [invoice_file]


def test_reupload_is_a_no_op(store: InvoiceStore) -> None:
    first, _ = store.add_file("a.png", "image/png", b"INV-1")
    second, is_new = store.add_file("a.png", "image/png", b"INV-1")

    assert is_new is False
    assert second is first
    assert len(store.list_files()) == 1


def test_process_pending_binds_record_to_file(
    store: InvoiceStore, provider: FakeProvider
) -> None:
    invoice_file, _ = store.add_file("a.png", "image/png", b"INV-1")

    processed = asyncio.run(store.process_pending(provider))

    assert processed == [invoice_file]
    assert invoice_file.status == "success"
    assert invoice_file.record is not None
    assert invoice_file.record.id == invoice_file.id
    assert invoice_file.record.invoice_number == "INV-1"
    assert invoice_file.duration_seconds is not None
    assert store.successful_records() == [invoice_file.record]


def test_failures_are_isolated(store: InvoiceStore, provider: FakeProvider) -> None:
    good, _ = store.add_file("good.png", "image/png", b"INV-1")
    bad, _ = store.add_file("bad.png", "image/png", b"bad scan")
    crash, _ = store.add_file("crash.png", "image/png", b"boom")

    asyncio.run(store.process_pending(provider))

    assert good.status == "success"
    assert bad.status == "error"
    assert bad.error == "Could not read invoice"
    assert bad.record is None
    assert crash.status == "error"
    assert crash.error == "Extraction failed: provider crashed"
    assert [r.id for r in store.successful_records()] == [good.id]


def test_only_idle_files_are_processed(store: InvoiceStore, provider: FakeProvider) -> None:
    store.add_file("a.png", "image/png", b"INV-1")
    asyncio.run(store.process_pending(provider))

    store.add_file("b.png", "image/png", b"INV-2")
    processed = asyncio.run(store.process_pending(provider))

    assert [f.filename for f in processed] == ["b.png"]
    assert provider.calls == [b"INV-1", b"INV-2"]


def test_nothing_pending(store: InvoiceStore, provider: FakeProvider) -> None:
    assert asyncio.run(store.process_pending(provider)) == []
    assert provider.calls == []


def test_requeue_failed_file(store: InvoiceStore, provider: FakeProvider) -> None:
    bad, _ = store.add_file("bad.png", "image/png", b"bad scan")
    asyncio.run(store.process_pending(provider))

    requeued = store.requeue(bad.id)

    assert requeued is bad
    assert bad.status == "idle"
    assert bad.error is None
    assert store.requeue("missing") is None


def test_requeue_leaves_successful_file_alone(
    store: InvoiceStore, provider: FakeProvider
) -> None:
    good, _ = store.add_file("good.png", "image/png", b"INV-1")
    asyncio.run(store.process_pending(provider))

    store.requeue(good.id)

    assert good.status == "success"


def test_remove(store: InvoiceStore) -> None:
    invoice_file, _ = store.add_file("a.png", "image/png", b"INV-1")

    assert store.remove(invoice_file.id) is True
    assert store.remove(invoice_file.id) is False
    assert store.get(invoice_file.id) is None


def test_load_records(store: InvoiceStore) -> None:
    added = store.load_records(SAMPLE_INVOICES)

    assert len(added) == len(SAMPLE_INVOICES)
    assert all(f.status == "success" for f in added)
    assert added[0].id == "sample-maersk-1"
    assert added[0].filename == "sample-maersk-1.json"
    assert len(store.successful_records()) == len(SAMPLE_INVOICES)

    assert store.load_records(SAMPLE_INVOICES) == []


def test_clear(store: InvoiceStore) -> None:
    store.load_records(SAMPLE_INVOICES)

    store.clear()

    assert store.list_files() == []


def test_reads_tolerate_concurrent_writes(store: InvoiceStore) -> None:
    """Request threads read the store while uploads and deletes change it."""
    store.load_records(SAMPLE_INVOICES)
    stop = threading.Event()

    def churn() -> None:
        n = 0
        while not stop.is_set():
            invoice_file, _ = store.add_file(f"{n}.png", "image/png", str(n).encode())
            store.remove(invoice_file.id)
            n += 1

    writer = threading.Thread(target=churn)
    writer.start()
    try:
        for _ in range(2000):
            assert len(store.successful_records()) == len(SAMPLE_INVOICES)
            store.list_files()
    finally:
        stop.set()
        writer.join()
