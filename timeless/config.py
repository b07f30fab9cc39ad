"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_pool_size: int = 20
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600
    run_migrations_on_startup: bool = True

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "Timeless Generation Gateway"
    api_version: str = "0.1.0"
    api_description: str = "Credit-gated AI generation dispatch and reconciliation"

    # User Authentication - JWTs issued by the auth provider
    auth_jwt_secret: str = ""
    auth_jwt_audience: str = "authenticated"
    auth_jwt_algorithm: str = "HS256"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "timeless-generation-gateway"

    # Provider - Fal.ai
    fal_api_key: str = ""
    fal_queue_url: str = "https://queue.fal.run"
    fal_sync_url: str = "https://fal.run"

    # Provider - Kie.ai
    kie_api_key: str = ""
    kie_base_url: str = "https://api.kie.ai"

    # Provider - AI gateway (image editing / text-to-image)
    ai_gateway_api_key: str = ""
    ai_gateway_url: str = "https://ai.gateway.lovable.dev/v1/chat/completions"
    ai_gateway_image_model: str = "google/gemini-2.5-flash-image-preview"

    # Outbound HTTP
    provider_timeout_seconds: float = 120.0

    # Reconciliation timeouts (minutes) before a pending job is failed and refunded
    image_job_timeout_minutes: int = 10
    video_job_timeout_minutes: int = 20
    music_job_timeout_minutes: int = 20

    # HTTP status returned when a user cannot afford a tool
    insufficient_credits_status_code: int = 402

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        The app MUST NOT start if critical config is missing.
        """
        errors: list[str] = []

        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        if self.insufficient_credits_status_code not in (400, 402):
            errors.append(
                "INSUFFICIENT_CREDITS_STATUS_CODE must be 400 or 402, "
                f"got: {self.insufficient_credits_status_code}"
            )

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - APPLICATION CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self

    def job_timeout_minutes(self, generation_type: str) -> int:
        """Get the reconciliation timeout for a generation type."""
        if generation_type == "music":
            return self.music_job_timeout_minutes
        if generation_type == "video":
            return self.video_job_timeout_minutes
        return self.image_job_timeout_minutes


# Global settings instance - validates at import time
settings = Settings()
