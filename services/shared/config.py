"""Shared configuration management for the platform.

Based on Pydantic Settings v2 best practices:
https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_VALIDATED_PROVIDERS = (
    "Maersk",
    "MSC",
    "CMA CGM",
    "COSCO",
    "Hapag-Lloyd",
    "Yang Ming",
)


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with the prefix 'APP_'.
    Example: APP_LOG_LEVEL=debug
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Service configuration
    service_name: str = Field(
        default="invoice-insights",
        description="Service identifier for metrics and logs",
    )
    service_version: str = Field(
        default="0.1.0",
        description="Service version",
    )

    # Extraction provider configuration
    extraction_provider: Literal["openai", "ollama"] = Field(
        default="openai",
        description="Extraction provider: openai (cloud API), ollama (self-hosted LLM)",
    )
    openai_model: str = Field(
        default="gpt-4o-mini",
        description="OpenAI vision model used for document extraction",
    )

    # Ollama configuration (for extraction_provider="ollama")
    ollama_base_url: str = Field(
        default="http://localhost:11434",
        description="Ollama server base URL",
    )
    ollama_model: str = Field(
        default="llama3.2-vision",
        description="Ollama vision model to use for extraction",
    )

    # Conversational assistant
    chat_model: str = Field(
        default="gpt-4o-mini",
        description="OpenAI model used by the analysis assistant",
    )

    # Dashboard / alerting
    validated_providers: Annotated[tuple[str, ...], NoDecode] = Field(
        default=DEFAULT_VALIDATED_PROVIDERS,
        description="Comma-separated providers considered pre-vetted (no new-provider alert)",
    )
    currency: str = Field(
        default="EUR",
        description="Currency code (ISO 4217) used when formatting amounts in alerts",
    )
    anomaly_threshold: float = Field(
        default=1.75,
        description="Invoice is anomalous when total exceeds provider average times this",
        gt=1,
    )
    trend_threshold_percent: float = Field(
        default=15.0,
        description="Minimum first-to-last increase (%) for a cost trend alert",
        ge=0,
    )
    recurring_min_months: int = Field(
        default=3,
        description="Distinct months needed before a provider is treated as recurring",
        ge=2,
    )
    trend_min_entries: int = Field(
        default=3,
        description="Minimum entries per concept before trend detection applies",
        ge=2,
    )

    # Uploads
    max_upload_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Maximum accepted size of a single uploaded document",
        gt=0,
    )

    @field_validator("validated_providers", mode="before")
    @classmethod
    def _split_providers(cls, value: object) -> object:
        """Accept a comma-separated string from the environment."""
        if isinstance(value, str):
            return tuple(name.strip() for name in value.split(",") if name.strip())
        return value

    @property
    def validated_provider_set(self) -> frozenset[str]:
        """Read-only allow-list handed to the dashboard engine."""
        return frozenset(self.validated_providers)


def get_settings() -> Settings:
    """Factory function to get settings instance.

    Returns:
        Configured Settings instance
    """
    return Settings()
