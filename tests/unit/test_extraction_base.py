"""Unit tests for extraction base classes and interfaces.

Tests cover:
- Abstract base class enforcement
- ExtractionResult model validation
- Accepted document types
"""

import pytest

from services.extraction.base import (
    EXTRACTION_PROMPT,
    ExtractionProvider,
    ExtractionResult,
    is_supported_media_type,
)
from services.extraction.schema import InvoiceData
from services.shared.config import Settings


def test_extraction_result_with_success() -> None:
    """Test ExtractionResult with successful extraction."""
    invoice_data = InvoiceData(invoice_number="INV-001", provider="Maersk")

    result = ExtractionResult(invoice_data=invoice_data, success=True, error=None, provider="test")

    assert result.success is True
    assert result.invoice_data is not None
    assert result.invoice_data.invoice_number == "INV-001"
    assert result.error is None
    assert result.provider == "test"


def test_extraction_result_with_failure() -> None:
    """Test ExtractionResult with failed extraction."""
    result = ExtractionResult(invoice_data=None, success=False, error="Test error", provider="test")

    assert result.success is False
    assert result.invoice_data is None
    assert result.error == "Test error"


@pytest.mark.parametrize(
    "media_type,expected",
    [
        ("application/pdf", True),
        ("image/png", True),
        ("image/jpeg", True),
        ("text/plain", False),
        ("application/json", False),
        ("", False),
        (None, False),
    ],
)
def test_is_supported_media_type(media_type: str | None, expected: bool) -> None:
    """Only images and PDF documents can be sent for extraction."""
    assert is_supported_media_type(media_type) is expected


def test_extraction_prompt_names_every_field() -> None:
    """The prompt asks for the same keys the schema reads."""
    for key in ("provider", "taxId", "invoiceNumber", "issueDate", "dueDate", "lineItems"):
        assert f'"{key}"' in EXTRACTION_PROMPT


def test_extraction_provider_is_abstract() -> None:
    """Test that ExtractionProvider cannot be instantiated directly."""
    settings = Settings()

    with pytest.raises(TypeError, match="Can't instantiate abstract class"):
        ExtractionProvider(settings)  # type: ignore[abstract]


def test_extraction_provider_requires_implementation() -> None:
    """Test that concrete providers must implement all abstract methods."""

    class IncompleteProvider(ExtractionProvider):
        def extract_invoice(self, content: bytes, media_type: str) -> ExtractionResult:
            return self._failure("Not implemented")

        def is_available(self) -> bool:
            return True

        # Missing: provider_name property

    settings = Settings()

    with pytest.raises(TypeError, match="Can't instantiate abstract class"):
        IncompleteProvider(settings)  # type: ignore[abstract]


def test_concrete_provider_failure_helper() -> None:
    """The failure helper stamps the provider name on the result."""

    class TestProvider(ExtractionProvider):
        def extract_invoice(self, content: bytes, media_type: str) -> ExtractionResult:
            return self._failure("boom")

        def is_available(self) -> bool:
            return True

        @property
        def provider_name(self) -> str:
            return "test"

    result = TestProvider(Settings()).extract_invoice(b"data", "image/png")

    assert result.success is False
    assert result.error == "boom"
    assert result.provider == "test"
    assert result.invoice_data is None
