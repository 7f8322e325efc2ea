"""Application configuration and environment helpers."""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TIMEZONE = "Europe/Athens"
DEFAULT_CURRENCY_SYMBOL = "€"

# Offline prices used when no live quote feed is wired in.
DEFAULT_DEMO_QUOTES: dict[str, Decimal] = {
    "eee": Decimal("49.58"),
    "eurob": Decimal("4.19"),
    "ete": Decimal("15.25"),
    "tpeir": Decimal("8.85"),
    "alpha": Decimal("4.43"),
    "ppc": Decimal("19.85"),
    "hto": Decimal("16.35"),
    "opap": Decimal("17.55"),
}


class AppSettings(BaseSettings):
    """Configuration options for the trading desk service."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    app_name: str = Field(default="Trading Desk")
    timezone: str = Field(default=DEFAULT_TIMEZONE, description="Local timezone for quiet hours and date groups.")
    currency_symbol: str = Field(default=DEFAULT_CURRENCY_SYMBOL)
    log_level: str = Field(default="INFO")

    initial_balance: Decimal = Field(default=Decimal("100000"), ge=0)

    alert_cooldown_minutes: int = Field(default=30, ge=0)
    alert_check_interval_seconds: float = Field(default=300.0, gt=0)
    alert_initial_delay_seconds: float = Field(default=10.0, ge=0)
    alert_monitor_enabled: bool = Field(default=True)
    max_alerts_per_device: int = Field(default=50, gt=0)
    notification_history_limit: int = Field(default=100, gt=0)

    state_database_url: str | None = Field(
        default=None,
        description="SQLAlchemy URL for persisted state; in-memory when unset.",
    )
    demo_quotes: dict[str, Decimal] = Field(default_factory=lambda: dict(DEFAULT_DEMO_QUOTES))

    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:8081", "http://localhost:19006"])

    telemetry_enabled: bool = Field(default=False)
    telemetry_service_name: str = Field(default="trading-desk")
    telemetry_otlp_endpoint: str | None = Field(default=None)
    telemetry_otlp_insecure: bool = Field(default=True)
    telemetry_sample_ratio: float = Field(default=1.0, ge=0.0, le=1.0)

    def dict_for_logging(self) -> dict[str, Any]:
        """Return a sanitized dict for logging purposes."""

        data = self.model_dump()
        url = data.get("state_database_url")
        if url and "@" in url:
            scheme, _, rest = url.partition("://")
            data["state_database_url"] = f"{scheme}://***@{rest.split('@', 1)[1]}"
        return data


@lru_cache(maxsize=1)
def get_settings(**overrides: Any) -> AppSettings:
    """Return cached application settings with optional overrides."""

    if overrides:
        return AppSettings(**overrides)
    return AppSettings()


__all__ = [
    "AppSettings",
    "DEFAULT_CURRENCY_SYMBOL",
    "DEFAULT_DEMO_QUOTES",
    "DEFAULT_TIMEZONE",
    "get_settings",
]
