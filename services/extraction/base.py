"""Abstract base class for extraction services.

Enables switching between different extraction providers (OpenAI, Ollama)
while maintaining consistent interface and type safety.

Based on Strategy Pattern:
https://refactoring.guru/design-patterns/strategy/python
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel

from services.extraction.schema import InvoiceData
from services.shared.config import Settings

SUPPORTED_MEDIA_TYPES = ("application/pdf",)


def is_supported_media_type(media_type: str | None) -> bool:
    """Check whether a document type can be sent for extraction.

    Args:
        media_type: MIME type reported for the upload

    Returns:
        True for images and PDF documents
    """
    if not media_type:
        return False
    return media_type.startswith("image/") or media_type in SUPPORTED_MEDIA_TYPES


EXTRACTION_PROMPT = (
    "Extract the structured data of the following invoice, including its line items "
    "(billed concepts). Reply only with one JSON object using these keys: "
    '"provider", "taxId", "invoiceNumber", "issueDate" (YYYY-MM-DD), '
    '"dueDate" (YYYY-MM-DD), "total", "taxableBase", "taxAmount" and '
    '"lineItems" (a list of objects with "description", "quantity", '
    '"unitPrice", "totalPrice"). Use null for any value not clearly present.'
)


class ExtractionResult(BaseModel):
    """Result of extraction operation.

    Attributes:
        invoice_data: Extracted invoice data or None if extraction failed
        success: Whether operation succeeded
        error: Error message if operation failed
        provider: Name of provider that performed extraction (e.g., 'openai', 'ollama')
    """

    invoice_data: InvoiceData | None
    success: bool
    error: str | None = None
    provider: str


class ExtractionProvider(ABC):
    """Abstract base class for invoice extraction providers.

    All extraction services must implement this interface. Implementations
    never raise on service failures; they report them on the result.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize provider with settings.

        Args:
            settings: Application settings
        """
        self.settings = settings

    @abstractmethod
    def extract_invoice(self, content: bytes, media_type: str) -> ExtractionResult:
        """Extract structured invoice data from a document.

        Args:
            content: Raw document bytes
            media_type: MIME type of the document (image/* or application/pdf)

        Returns:
            ExtractionResult with structured invoice data or error
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this provider is available/configured.

        Returns:
            True if provider can be used, False otherwise
        """
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier (e.g., 'openai', 'ollama')
        """
        pass

    def _failure(self, error: str) -> ExtractionResult:
        return ExtractionResult(
            invoice_data=None,
            success=False,
            error=error,
            provider=self.provider_name,
        )
