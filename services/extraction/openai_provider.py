"""OpenAI-based extraction provider for invoice documents.

Sends the document itself to a vision-capable chat model and asks for a
single JSON object back (JSON mode).

Includes retry logic with exponential backoff for transient API errors.
"""

import base64
import json
import logging
import os
from typing import Any

from openai import OpenAI
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from services.extraction.base import (
    EXTRACTION_PROMPT,
    ExtractionProvider,
    ExtractionResult,
    is_supported_media_type,
)
from services.extraction.schema import InvoiceData
from services.shared.config import Settings

logger = logging.getLogger(__name__)


class OpenAIExtractionProvider(ExtractionProvider):
    """OpenAI-based extraction provider using a vision model.

    Requires OPENAI_API_KEY environment variable.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize OpenAI extraction provider.

        Args:
            settings: Application settings
        """
        super().__init__(settings)
        self._client: OpenAI | None = None

    @property
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier 'openai'
        """
        return "openai"

    def is_available(self) -> bool:
        """Check if OpenAI API key is configured.

        Returns:
            True if OPENAI_API_KEY environment variable is set
        """
        return os.getenv("OPENAI_API_KEY") is not None

    def extract_invoice(self, content: bytes, media_type: str) -> ExtractionResult:
        """Extract structured invoice data from a document using OpenAI.

        Args:
            content: Raw document bytes
            media_type: MIME type of the document

        Returns:
            ExtractionResult with structured invoice data or error, provider='openai'
        """
        if not self.is_available():
            return self._failure("OPENAI_API_KEY environment variable not set")

        if not content:
            return self._failure("Empty document provided")

        if not is_supported_media_type(media_type):
            return self._failure(f"Unsupported media type: {media_type}")

        try:
            api_key = os.getenv("OPENAI_API_KEY")
            if self._client is None or self._client.api_key != api_key:
                self._client = OpenAI(api_key=api_key)

            response = self._call_openai_with_retry(self._build_messages(content, media_type))

            message_content = response.choices[0].message.content
            if not message_content:
                return self._failure("Empty response from extraction model")

            payload = json.loads(message_content)
            if not isinstance(payload, dict):
                return self._failure("Model output must be a JSON object")

            return ExtractionResult(
                invoice_data=InvoiceData.model_validate(payload),
                success=True,
                provider=self.provider_name,
            )

        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse JSON from OpenAI response: {e}")
            return self._failure(f"JSON parsing failed: {str(e)}")
        except Exception as e:
            logger.error(f"OpenAI extraction failed: {e}")
            return self._failure(f"Extraction failed: {str(e)}")

    @retry(
        retry=retry_if_exception_type((Exception,)),  # Retry on transient errors
        wait=wait_exponential_jitter(initial=1, max=60),  # Exponential backoff with jitter
        stop=stop_after_attempt(3),  # Max 3 attempts
        reraise=True,  # Re-raise exception after max attempts
    )
    def _call_openai_with_retry(self, messages: list[dict[str, Any]]) -> Any:
        """Call OpenAI API with retry logic for transient errors.

        Args:
            messages: Chat messages including the document part

        Returns:
            OpenAI API response

        Raises:
            Exception: After all retry attempts are exhausted
        """
        if self._client is None:
            raise RuntimeError("OpenAI client not initialized")

        return self._client.chat.completions.create(  # type: ignore[call-overload]
            model=self.settings.openai_model,
            messages=messages,
            response_format={"type": "json_object"},
            temperature=0,  # Deterministic output
        )

    def _build_messages(self, content: bytes, media_type: str) -> list[dict[str, Any]]:
        """Build the chat payload with the document attached as a data URI.

        Args:
            content: Raw document bytes
            media_type: MIME type of the document

        Returns:
            Messages for the chat completions API
        """
        encoded = base64.b64encode(content).decode("ascii")
        data_uri = f"data:{media_type};base64,{encoded}"

        if media_type == "application/pdf":
            document_part: dict[str, Any] = {
                "type": "file",
                "file": {"filename": "invoice.pdf", "file_data": data_uri},
            }
        else:
            document_part = {"type": "image_url", "image_url": {"url": data_uri}}

        return [
            {
                "role": "system",
                "content": "You are an invoice data extraction assistant. Return strict JSON only.",
            },
            {
                "role": "user",
                "content": [{"type": "text", "text": EXTRACTION_PROMPT}, document_part],
            },
        ]
