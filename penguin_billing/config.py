"""
Service configuration, read from the environment (and .env) by pydantic-settings.

Everything the service cannot run without is checked once, when the module
is imported; a broken deployment refuses to boot instead of failing requests.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from penguin_billing.models.domain import MonetizationTier

BANNER_WIDTH = 60

# Environment variable -> attribute for settings that have no usable default
REQUIRED_SETTINGS = {
    "DATABASE_URL": "database_url",
    "GOOGLE_PLAY_PACKAGE_NAME": "google_play_package_name",
    "GOOGLE_SERVICE_ACCOUNT_JSON": "google_service_account_json",
    "RTDN_SHARED_SECRET": "rtdn_shared_secret",
}


class ConfigurationError(Exception):
    """Raised when required settings are missing or malformed."""


def _split_ids(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _startup_banner(problems: list[str]) -> str:
    rule = "=" * BANNER_WIDTH
    lines = ["", rule, "PENGUIN BILLING REFUSED TO START: INVALID CONFIGURATION", rule]
    lines.extend(f"  ✗ {problem}" for problem in problems)
    lines.extend([rule, ""])
    return "\n".join(lines)


class Settings(BaseSettings):
    """Environment-backed settings for the entitlement service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # PostgreSQL (asyncpg); intentionally blank so a missing URL is caught
    database_url: str = ""
    database_pool_size: int = 10
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600
    run_migrations_on_startup: bool = True

    # HTTP server
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    api_title: str = "Penguin Billing API"
    api_version: str = "0.1.0"
    api_description: str = "Subscription verification and entitlement resolution"

    # Google Play Developer API
    google_play_package_name: str = ""
    # Raw JSON, base64-encoded JSON, or a path to the key file
    google_service_account_json: str = ""
    verification_timeout_seconds: float = 10.0

    # Pub/Sub push authentication for RTDN
    rtdn_shared_secret: str = ""

    # Catalog; extra IDs are comma-separated
    plus_yearly_product_id: str = "plus_yearly"
    pro_yearly_product_id: str = "pro_yearly"
    plus_product_ids: str = ""
    pro_product_ids: str = ""

    # structlog
    log_level: str = "INFO"
    log_format: str = "json"  # json | console

    # Prometheus and OpenTelemetry
    metrics_enabled: bool = True
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "penguin-billing-backend"

    @property
    def tier_table(self) -> dict[str, MonetizationTier]:
        """
        Product ID -> tier mapping used by the entitlement resolver.

        PRO wins if the same product ID is configured for both tiers.
        """
        table: dict[str, MonetizationTier] = {}
        tiers = [
            (MonetizationTier.PLUS, self.plus_yearly_product_id, self.plus_product_ids),
            (MonetizationTier.PRO, self.pro_yearly_product_id, self.pro_product_ids),
        ]
        for tier, yearly_id, extra_ids in tiers:
            for product_id in [yearly_id, *_split_ids(extra_ids)]:
                if product_id:
                    table[product_id] = tier
        return table

    def _problems(self) -> list[str]:
        problems = [
            f"{env_name} is required but empty or missing"
            for env_name, attr in REQUIRED_SETTINGS.items()
            if not getattr(self, attr)
        ]
        if self.database_url and not self.database_url.startswith(("postgresql", "postgres")):
            problems.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )
        if self.verification_timeout_seconds <= 0:
            problems.append(
                "VERIFICATION_TIMEOUT_SECONDS must be positive, got: "
                f"{self.verification_timeout_seconds}"
            )
        return problems

    @model_validator(mode="after")
    def refuse_incomplete_config(self) -> "Settings":
        """Collect every problem, print them as one banner, then raise."""
        problems = self._problems()
        if problems:
            banner = _startup_banner(problems)
            print(banner, file=sys.stderr)
            raise ConfigurationError(banner)
        return self


# Validated on import
settings = Settings()


def get_settings() -> Settings:
    """FastAPI dependency returning the process-wide settings."""
    return settings
