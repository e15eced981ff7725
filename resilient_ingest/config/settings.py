"""Application settings using Pydantic Settings for environment-based configuration."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, RedisDsn
from pydantic_settings import BaseSettings, SettingsConfigDict

from resilient_ingest.ingestion.schemas import SourceType


class Settings(BaseSettings):
    """
    Central configuration for the ingestion client.

    All settings can be overridden via environment variables.
    Prefix is not used to allow standard env var names (e.g., REDIS_URL).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    debug: bool = False

    # Redis (response cache + dedup index)
    redis_url: RedisDsn = Field(default="redis://localhost:6379/0")
    redis_timeout_seconds: float = Field(default=2.0, gt=0.0)
    cache_namespace: str = "resilient-ingest"

    # Cache TTLs per source type
    cache_ttl_api_seconds: int = Field(default=12 * 3600, ge=1)
    cache_ttl_feed_seconds: int = Field(default=6 * 3600, ge=1)
    cache_ttl_scrape_seconds: int = Field(default=24 * 3600, ge=1)
    dedup_window_seconds: int = Field(default=48 * 3600, ge=1)

    # Retry policy
    retry_max_attempts: int = Field(default=3, ge=1, le=10)
    retry_initial_delay_seconds: float = Field(default=1.0, ge=0.0)
    retry_max_delay_seconds: float = Field(default=30.0, ge=0.0, le=300.0)
    retry_backoff_multiplier: float = Field(default=2.0, ge=1.0)

    # Circuit breaker
    circuit_failure_threshold: int = Field(default=5, ge=1)
    circuit_reset_timeout_seconds: float = Field(default=60.0, ge=0.0)

    # Rate limits (requests per minute, per provider)
    default_requests_per_minute: int = Field(default=60, ge=1)

    # Fan-out
    max_concurrent_sources: int = Field(default=8, ge=1)

    # HTTP
    api_timeout_seconds: float = Field(default=30.0, gt=0.0)
    feed_timeout_seconds: float = Field(default=15.0, gt=0.0)
    scrape_timeout_seconds: float = Field(default=30.0, gt=0.0)
    user_agent: str = "resilient-ingest/0.1.0"

    # Observability
    metrics_port: int = 8000
    otel_exporter_otlp_endpoint: str | None = None
    otel_service_name: str = "resilient-ingest"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def tracing_enabled(self) -> bool:
        """Tracing is switched on by configuring an OTLP endpoint."""
        return self.otel_exporter_otlp_endpoint is not None

    @property
    def cache_ttls(self) -> dict[SourceType, int]:
        """Default response cache TTL in seconds for each source type."""
        return {
            SourceType.API: self.cache_ttl_api_seconds,
            SourceType.FEED: self.cache_ttl_feed_seconds,
            SourceType.SCRAPE: self.cache_ttl_scrape_seconds,
        }

    def timeout_for(self, source_type: SourceType) -> float:
        """HTTP timeout in seconds for requests made on behalf of a source type."""
        return {
            SourceType.API: self.api_timeout_seconds,
            SourceType.FEED: self.feed_timeout_seconds,
            SourceType.SCRAPE: self.scrape_timeout_seconds,
        }[SourceType(source_type)]


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.
    Clear cache with get_settings.cache_clear() if needed.
    """
    return Settings()
