"""Selection of the extraction backend named in settings."""

import logging

from services.extraction.base import ExtractionProvider
from services.extraction.ollama_provider import OllamaExtractionProvider
from services.extraction.openai_provider import OpenAIExtractionProvider
from services.shared.config import Settings

logger = logging.getLogger(__name__)

# Keys match the values accepted by Settings.extraction_provider
EXTRACTION_PROVIDERS: dict[str, type[ExtractionProvider]] = {
    "openai": OpenAIExtractionProvider,
    "ollama": OllamaExtractionProvider,
}


def extraction_model(settings: Settings) -> str:
    """Name of the model the configured backend will be asked to read documents with."""
    if settings.extraction_provider == "ollama":
        return settings.ollama_model
    return settings.openai_model


def create_extraction_service(settings: Settings) -> ExtractionProvider:
    """Build the extraction backend that uploaded invoices are sent to.

    An unreachable backend is still returned: uploads keep working and each
    file fails individually at processing time, where it can be retried.

    Raises:
        ValueError: If settings name a backend that does not exist
    """
    name = settings.extraction_provider
    provider_class = EXTRACTION_PROVIDERS.get(name)
    if provider_class is None:
        raise ValueError(
            f"Unknown extraction provider: '{name}'. "
            f"Available providers: {', '.join(EXTRACTION_PROVIDERS)}"
        )

    provider = provider_class(settings)

    if not provider.is_available():
        logger.warning(
            f"Extraction provider '{name}' is not reachable; invoices will fail to "
            f"process until it is configured"
        )
    if name == "ollama":
        logger.info("Ollama reads images only; PDF invoices will be reported as failed")

    logger.info(f"Created extraction provider: {name} (model {extraction_model(settings)})")
    return provider
