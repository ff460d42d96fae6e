"""Shared configuration management for the ingestion pipeline.

Based on Pydantic Settings v2 best practices:
https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with the prefix 'RECEIPTS_'.
    Example: RECEIPTS_OPENAI_API_KEY=sk-...
    """

    model_config = SettingsConfigDict(
        env_prefix="RECEIPTS_",
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
    service_name: str = Field(
        default="receipt-ingestion",
        description="Service identifier for metrics and logs",
    )
    service_version: str = Field(
        default="0.1.0",
        description="Service version",
    )

    # Filesystem layout
    inbox_path: str = Field(
        default="/data/inbox",
        description="Intake directory scanned for new documents (transient)",
    )
    attachments_path: str = Field(
        default="/data/attachments",
        description="Durable storage root for ingested documents",
    )
    supported_extensions: list[str] = Field(
        default=["pdf", "jpg", "jpeg", "png", "gif", "bmp", "tiff", "webp"],
        description="File extensions accepted by intake (case-insensitive, no dot)",
    )
    checksum_algorithm: str = Field(
        default="sha256",
        description="hashlib algorithm used for content deduplication",
    )

    # Inbox watcher
    default_user_id: str = Field(
        default="1",
        description="Owner assigned to files picked up from the inbox directory",
    )
    scan_interval_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Delay between inbox directory scans",
    )

    # OCR provider credentials (engines without a real key are never created)
    openai_api_key: SecretStr | None = Field(
        default=None,
        description="OpenAI API key (use env var RECEIPTS_OPENAI_API_KEY)",
    )
    claude_api_key: SecretStr | None = Field(
        default=None,
        description="Anthropic API key (use env var RECEIPTS_CLAUDE_API_KEY)",
    )
    google_ai_api_key: SecretStr | None = Field(
        default=None,
        description="Google AI Studio API key (use env var RECEIPTS_GOOGLE_AI_API_KEY)",
    )

    # OCR provider models
    openai_model: str = Field(
        default="gpt-4o-mini",
        description="OpenAI vision-capable chat model",
    )
    claude_model: str = Field(
        default="claude-3-haiku-20240307",
        description="Anthropic vision-capable model",
    )
    google_ai_model: str = Field(
        default="gemini-1.5-flash",
        description="Gemini vision-capable model",
    )
    ocr_max_tokens: int = Field(
        default=500,
        gt=0,
        description="Maximum tokens requested from OCR providers",
    )

    # Retry backoff for transient provider errors
    ocr_retry_initial_wait: float = Field(
        default=1.0,
        ge=0,
        description="Initial backoff (seconds) between OCR retries",
    )
    ocr_retry_max_wait: float = Field(
        default=10.0,
        ge=0,
        description="Maximum backoff (seconds) between OCR retries",
    )

    # Persistence
    database_url: str = Field(
        default="sqlite:///./receipts.db",
        description="SQLAlchemy URL for the inbox item store",
    )


def get_settings() -> Settings:
    """Factory function to get settings instance.

    Returns:
        Configured Settings instance
    """
    return Settings()
