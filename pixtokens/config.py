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
    database_read_url: str | None = None  # Optional read replica
    database_pool_size: int = 10
    database_max_overflow: int = 5
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600
    run_migrations: bool = False

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "Pix Token Purchases API"
    api_version: str = "0.1.0"
    api_description: str = "Token bundle purchases paid with Pix"

    # Identity provider (Supabase-compatible auth endpoint)
    auth_url: str = ""  # e.g. https://<project>.supabase.co
    auth_api_key: str = ""  # anon/service key sent as the apikey header
    auth_jwt_secret: str = ""  # verifies claims on the fallback path when set
    auth_timeout_seconds: float = 10.0

    # Payment Gateway - Mercado Pago
    mercado_pago_access_token: str = ""  # APP_USR-... (TEST-... is refused)
    mercado_pago_notification_url: str = ""
    mercado_pago_api_base_url: str = "https://api.mercadopago.com"
    gateway_timeout_seconds: float = 30.0

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "pix-token-purchases"

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
        Gateway and identity settings are checked per request instead, so
        the health endpoint stays reachable while they are being rotated.
        """
        errors: list[str] = []

        # DATABASE_URL is absolutely required
        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
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

    @property
    def read_database_url(self) -> str:
        """Get read database URL (fallback to primary if no replica)."""
        return self.database_read_url or self.database_url

    @property
    def gateway_configured(self) -> bool:
        """Whether the payment gateway can be called at all."""
        return bool(self.mercado_pago_access_token)

    @property
    def gateway_test_mode(self) -> bool:
        """Sandbox tokens cannot settle real Pix payments."""
        return self.mercado_pago_access_token.startswith("TEST-")

    @property
    def identity_configured(self) -> bool:
        """Whether the identity provider round-trip is available."""
        return bool(self.auth_url and self.auth_api_key)


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
