"""Shared configuration management for the platform.

Based on Pydantic Settings v2 best practices:
https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


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
        default="bid-matching-platform",
        description="Service identifier for metrics and logs",
    )
    service_version: str = Field(
        default="0.1.0",
        description="Service version",
    )

    # Text-understanding (model) service configuration
    inference_provider: Literal["openai", "ollama"] = Field(
        default="openai",
        description="Model service used for the model-based extraction phase",
    )
    inference_enabled: bool = Field(
        default=True,
        description="Run the model-based extraction phase (rule phase always runs)",
    )
    openai_model: str = Field(
        default="gpt-4o-mini",
        description="OpenAI chat model used for structured extraction",
    )
    ollama_base_url: str = Field(
        default="http://localhost:11434",
        description="Ollama server base URL",
    )
    ollama_model: str = Field(
        default="qwen2.5:7b",
        description="Ollama model to use for extraction (e.g., qwen2.5:7b, llama3.1:8b)",
    )
    inference_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Timeout for a single model service call",
    )
    inference_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts per model call before the model phase is abandoned",
    )
    inference_backoff_initial: float = Field(
        default=1.0,
        ge=0,
        description="Initial exponential backoff delay in seconds",
    )
    inference_backoff_max: float = Field(
        default=30.0,
        ge=0,
        description="Maximum backoff delay in seconds",
    )
    inference_backoff_jitter: float = Field(
        default=1.0,
        ge=0,
        description="Maximum random jitter added to each backoff delay",
    )

    # Classification
    dispatch_floor: float = Field(
        default=0.1,
        ge=0,
        le=1,
        description="Below this best confidence the generic extractor is forced",
    )
    document_body_max_chars: int = Field(
        default=20000,
        gt=0,
        description="Body text beyond this length is truncated on ingestion",
    )

    # Matching
    pipeline_min_score: float = Field(
        default=0.5,
        ge=0,
        le=1,
        description="Minimum composite score persisted by the document pipeline",
    )
    pipeline_top_n: int = Field(
        default=5,
        ge=1,
        description="Number of ranked suppliers persisted per document",
    )
    suggestion_min_score: float = Field(
        default=0.1,
        ge=0,
        le=1,
        description="Minimum composite score returned by the suggestion endpoint",
    )
    suggestion_limit: int = Field(
        default=10,
        ge=1,
        description="Maximum number of suggestions returned",
    )
    matching_max_workers: int = Field(
        default=8,
        ge=1,
        description="Worker threads used to score suppliers concurrently",
    )

    # Catalog store
    catalog_backend: Literal["memory", "redis"] = Field(
        default="memory",
        description="Supplier catalog and match history backend",
    )
    catalog_seed_path: str | None = Field(
        default=None,
        description="JSON file of suppliers loaded into the in-memory catalog",
    )
    catalog_history_limit: int = Field(
        default=20,
        ge=1,
        description="Ranking runs kept per document",
    )

    # Queue / events (Redis)
    queue_enabled: bool = Field(
        default=False,
        description="Enable background processing through the arq worker",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL for queue, events and catalog",
    )
    queue_max_jobs: int = Field(
        default=10,
        ge=1,
        description="Maximum concurrent jobs per worker",
    )
    queue_job_timeout: int = Field(
        default=300,
        ge=1,
        description="Job timeout in seconds",
    )
    event_channel: str = Field(
        default="bid-events",
        description="Redis pub/sub channel for pipeline events",
    )

    # Storage configuration (S3-compatible object storage)
    storage_enabled: bool = Field(
        default=False,
        description="Enable raw document retrieval from S3-compatible storage (MinIO)",
    )
    storage_endpoint: str = Field(
        default="localhost:9000",
        description="S3-compatible storage endpoint (host:port)",
    )
    storage_access_key: str = Field(
        default="",
        description="Storage access key (use env var APP_STORAGE_ACCESS_KEY)",
    )
    storage_secret_key: str = Field(
        default="",
        description="Storage secret key (use env var APP_STORAGE_SECRET_KEY)",
    )
    storage_bucket: str = Field(
        default="documents",
        description="Bucket holding inbound raw documents",
    )
    storage_secure: bool = Field(
        default=False,
        description="Use HTTPS for storage connections",
    )


def get_settings() -> Settings:
    """Factory function to get settings instance.

    Returns:
        Configured Settings instance
    """
    return Settings()
