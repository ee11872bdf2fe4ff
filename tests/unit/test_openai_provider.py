"""Unit tests for OpenAIExtractionProvider.

The OpenAI client is mocked; no network calls are made.
"""

import base64
import json
from decimal import Decimal
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from services.extraction.openai_provider import OpenAIExtractionProvider
from services.shared.config import Settings

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image"


@pytest.fixture
def provider() -> OpenAIExtractionProvider:
    """Create OpenAI provider instance."""
    return OpenAIExtractionProvider(Settings(_env_file=None))


@pytest.fixture
def sample_payload() -> dict[str, Any]:
    """Model output for a small invoice."""
    return {
        "provider": "Maersk",
        "taxId": "A12345678",
        "invoiceNumber": "INV-12345",
        "issueDate": "2024-01-15",
        "total": 1100.00,
        "lineItems": [{"description": "Freight", "totalPrice": 1100}],
    }


def _response(content: str | None) -> MagicMock:
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    return response


def test_provider_name(provider: OpenAIExtractionProvider) -> None:
    assert provider.provider_name == "openai"


@patch.dict("os.environ", {}, clear=True)
def test_extract_without_api_key(provider: OpenAIExtractionProvider) -> None:
    """Test extraction fails gracefully without API key."""
    result = provider.extract_invoice(PNG_BYTES, "image/png")

    assert result.success is False
    assert result.invoice_data is None
    assert result.error == "OPENAI_API_KEY environment variable not set"


@patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
def test_extract_empty_document(provider: OpenAIExtractionProvider) -> None:
    result = provider.extract_invoice(b"", "image/png")

    assert result.success is False
    assert result.error == "Empty document provided"


@patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
def test_extract_unsupported_media_type(provider: OpenAIExtractionProvider) -> None:
    result = provider.extract_invoice(b"hello", "text/plain")

    assert result.success is False
    assert result.error == "Unsupported media type: text/plain"


@patch("services.extraction.openai_provider.OpenAI")
@patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
def test_extract_success(
    mock_openai_class: MagicMock,
    provider: OpenAIExtractionProvider,
    sample_payload: dict[str, Any],
) -> None:
    """Test successful invoice data extraction from an image."""
    mock_client = MagicMock()
    mock_openai_class.return_value = mock_client
    mock_client.chat.completions.create.return_value = _response(json.dumps(sample_payload))

    result = provider.extract_invoice(PNG_BYTES, "image/png")

    assert result.success is True
    assert result.provider == "openai"
    assert result.invoice_data is not None
    assert result.invoice_data.invoice_number == "INV-12345"
    assert result.invoice_data.total == Decimal("1100.0")
    assert result.invoice_data.line_items[0].description == "Freight"

    kwargs = mock_client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["response_format"] == {"type": "json_object"}
    document_part = kwargs["messages"][1]["content"][1]
    expected_uri = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode("ascii")
    assert document_part == {"type": "image_url", "image_url": {"url": expected_uri}}


@patch("services.extraction.openai_provider.OpenAI")
@patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
def test_extract_pdf_is_sent_as_file(
    mock_openai_class: MagicMock,
    provider: OpenAIExtractionProvider,
    sample_payload: dict[str, Any],
) -> None:
    mock_client = MagicMock()
    mock_openai_class.return_value = mock_client
    mock_client.chat.completions.create.return_value = _response(json.dumps(sample_payload))

    result = provider.extract_invoice(b"%PDF-1.4 fake", "application/pdf")

    assert result.success is True
    document_part = mock_client.chat.completions.create.call_args.kwargs["messages"][1]["content"][1]
    assert document_part["type"] == "file"
    assert document_part["file"]["filename"] == "invoice.pdf"
    assert document_part["file"]["file_data"].startswith("data:application/pdf;base64,")


@patch("services.extraction.openai_provider.OpenAI")
@patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
def test_extract_invalid_json(
    mock_openai_class: MagicMock, provider: OpenAIExtractionProvider
) -> None:
    mock_client = MagicMock()
    mock_openai_class.return_value = mock_client
    mock_client.chat.completions.create.return_value = _response("not json at all")

    result = provider.extract_invoice(PNG_BYTES, "image/png")

    assert result.success is False
    assert result.error is not None
    assert result.error.startswith("JSON parsing failed")


@patch("services.extraction.openai_provider.OpenAI")
@patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
def test_extract_non_object_json(
    mock_openai_class: MagicMock, provider: OpenAIExtractionProvider
) -> None:
    mock_client = MagicMock()
    mock_openai_class.return_value = mock_client
    mock_client.chat.completions.create.return_value = _response("[1, 2, 3]")

    result = provider.extract_invoice(PNG_BYTES, "image/png")

    assert result.success is False
    assert result.error == "Model output must be a JSON object"


@patch("services.extraction.openai_provider.OpenAI")
@patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
def test_extract_empty_response(
    mock_openai_class: MagicMock, provider: OpenAIExtractionProvider
) -> None:
    mock_client = MagicMock()
    mock_openai_class.return_value = mock_client
    mock_client.chat.completions.create.return_value = _response(None)

    result = provider.extract_invoice(PNG_BYTES, "image/png")

    assert result.success is False
    assert result.error == "Empty response from extraction model"


@patch("services.extraction.openai_provider.OpenAI")
@patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
def test_extract_with_retry_on_transient_error(
    mock_openai_class: MagicMock,
    provider: OpenAIExtractionProvider,
    sample_payload: dict[str, Any],
) -> None:
    """Test extraction retries on transient errors and succeeds."""
    mock_client = MagicMock()
    mock_openai_class.return_value = mock_client
    mock_client.chat.completions.create.side_effect = [
        Exception("Temporary API error"),
        _response(json.dumps(sample_payload)),
    ]

    result = provider.extract_invoice(PNG_BYTES, "image/png")

    assert result.success is True
    assert mock_client.chat.completions.create.call_count == 2


@patch("services.extraction.openai_provider.OpenAI")
@patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
def test_extract_fails_after_max_retries(
    mock_openai_class: MagicMock, provider: OpenAIExtractionProvider
) -> None:
    """Test extraction fails after exhausting all retries."""
    mock_client = MagicMock()
    mock_openai_class.return_value = mock_client
    mock_client.chat.completions.create.side_effect = Exception("Persistent API error")

    result = provider.extract_invoice(PNG_BYTES, "image/png")

    assert result.success is False
    assert result.invoice_data is None
    assert result.error is not None
    assert "Extraction failed" in result.error
    assert "Persistent API error" in result.error
    assert mock_client.chat.completions.create.call_count == 3
