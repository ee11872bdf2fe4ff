"""Ollama-based extraction provider for self-hosted LLM inference.

Uses a local Ollama server running a vision model for structured data
extraction from invoice images. Keeps documents on-premises.

Requires Ollama server running on localhost:11434.
See: https://ollama.ai/
"""

import base64
import json
import logging
import re
from typing import Any

import httpx
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


class OllamaExtractionProvider(ExtractionProvider):
    """Ollama-based extraction provider for self-hosted LLM inference.

    Only images are accepted: Ollama vision models take base64 images, not PDFs.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize Ollama extraction provider.

        Args:
            settings: Application settings
        """
        super().__init__(settings)
        self._base_url = settings.ollama_base_url
        self._model = settings.ollama_model
        self._client = httpx.Client(timeout=120.0)  # LLMs can be slow

    @property
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier 'ollama'
        """
        return "ollama"

    def is_available(self) -> bool:
        """Check if Ollama server is running and model is available.

        Returns:
            True if Ollama server responds and model is loaded
        """
        try:
            response = self._client.get(f"{self._base_url}/api/tags")
            if response.status_code != 200:
                return False
            models = response.json().get("models", [])
            model_names = [m.get("name", "").split(":")[0] for m in models]
            return self._model.split(":")[0] in model_names
        except httpx.HTTPError:
            return False

    def extract_invoice(self, content: bytes, media_type: str) -> ExtractionResult:
        """Extract structured invoice data from an image using Ollama.

        Args:
            content: Raw image bytes
            media_type: MIME type of the document

        Returns:
            ExtractionResult with structured invoice data or error
        """
        if not content:
            return self._failure("Empty document provided")

        if not is_supported_media_type(media_type) or not media_type.startswith("image/"):
            return self._failure(f"Unsupported media type for ollama: {media_type}")

        try:
            image = base64.b64encode(content).decode("ascii")
            response_text = self._call_ollama_with_retry(image)

            invoice_dict = self._parse_json_response(response_text)

            return ExtractionResult(
                invoice_data=InvoiceData.model_validate(invoice_dict),
                success=True,
                provider=self.provider_name,
            )

        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse JSON from Ollama response: {e}")
            return self._failure(f"JSON parsing failed: {str(e)}")
        except Exception as e:
            logger.error(f"Ollama extraction failed: {e}")
            return self._failure(f"Extraction failed: {str(e)}")

    @retry(
        retry=retry_if_exception_type((httpx.HTTPError, httpx.TimeoutException)),
        wait=wait_exponential_jitter(initial=1, max=30),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    def _call_ollama_with_retry(self, image: str) -> str:
        """Call Ollama API with retry logic for transient errors.

        Args:
            image: Base64-encoded image

        Returns:
            Raw response text from Ollama

        Raises:
            httpx.HTTPError: After all retry attempts exhausted
        """
        response = self._client.post(
            f"{self._base_url}/api/generate",
            json={
                "model": self._model,
                "prompt": EXTRACTION_PROMPT,
                "images": [image],
                "format": "json",
                "stream": False,
                "options": {
                    "temperature": 0,  # Deterministic output
                    "num_predict": 2048,  # Line items make responses long
                },
            },
        )
        response.raise_for_status()
        result: str = response.json().get("response", "")
        return result

    def _parse_json_response(self, response_text: str) -> dict[str, Any]:
        """Extract and parse JSON from LLM response.

        Handles common LLM quirks like markdown code blocks.

        Args:
            response_text: Raw LLM response

        Returns:
            Parsed JSON dict

        Raises:
            json.JSONDecodeError: If no valid JSON object found
        """
        json_match = re.search(r"```(?:json)?\s*([\s\S]*?)```", response_text)
        if json_match:
            candidate = json_match.group(1).strip()
        else:
            json_match = re.search(r"\{[\s\S]*\}", response_text)
            candidate = json_match.group(0) if json_match else response_text.strip()

        result = json.loads(candidate)
        if not isinstance(result, dict):
            raise json.JSONDecodeError("Expected a JSON object", candidate, 0)
        return result
