# ==== APPLICATION SETTINGS CONFIGURATION ==== #

"""
Application settings configuration for the review batch executor.

This module provides centralized configuration management using Pydantic Settings
with environment variable loading and validation for the executor, the
generation client and the observability stack.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


# ==== MAIN SETTINGS CLASS ==== #


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Provides configuration for batch execution limits, circuit breaking,
    the text-generation provider and logging with validation and type safety.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=True,
        extra='ignore'
    )

    # --► CORE APPLICATION SETTINGS
    APP_ENV: str = "dev"
    SERVICE_NAME: str = "review-batch"
    LOG_LEVEL: str = "INFO"

    # --► BATCH EXECUTION
    BATCH_CONCURRENCY: int = 3
    BATCH_RETRY_ATTEMPTS: int = 2
    BATCH_BACKOFF_DELAY_SECONDS: float = 1.0
    BATCH_TIMEOUT_SECONDS: float | None = 45.0
    BATCH_RATE_LIMIT_PER_SECOND: int = 10

    # --► CIRCUIT BREAKER
    CIRCUIT_FAILURE_THRESHOLD: int = 5
    CIRCUIT_RESET_TIMEOUT_SECONDS: float = 30.0

    # --► TEXT GENERATION PROVIDER
    AI_PROVIDER_BASE_URL: str = "https://api.anthropic.com/v1"
    AI_API_KEY: str | None = None
    AI_MODEL: str = "claude-3-5-sonnet-20241022"
    AI_API_VERSION: str = "2023-06-01"
    AI_MAX_TOKENS: int = 1000
    AI_TEMPERATURE: float = 0.9

    # --► OBSERVABILITY CONFIGURATION
    OTEL_EXPORTER_OTLP_ENDPOINT: str | None = None
    OTEL_EXPORTER_OTLP_HEADERS: str | None = None
    OTEL_SERVICE_NAME: str | None = None
    OTEL_RESOURCE_ATTRIBUTES: str | None = None


# ==== GLOBAL SETTINGS INSTANCE ==== #


# Global settings instance for application-wide access
settings = Settings()


def get_settings() -> Settings:
    """
    Get global settings instance.

    Returns:
        Settings: Global application settings instance
    """
    return settings
