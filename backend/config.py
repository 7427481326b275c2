"""
Configuration management for the order fulfillment service.

Loads settings from .env via pydantic-settings.

Notes:
    - DATABASE_URL accepts plain sqlite:/// URLs; database.py rewrites them
      for the aiosqlite driver.
    - validate_production_settings() enforces strict CORS and a reachable
      notification transport in production.
"""
import logging

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── Database ────────────────────────────────────────────────────
    database_url: str = "sqlite:///./data/orders.db"
    sqlite_busy_timeout_seconds: float = 15.0

    # ── Inventory ───────────────────────────────────────────────────
    low_stock_threshold: int = 10        # stock <= threshold => "Low Stock"

    # ── Fulfillment ─────────────────────────────────────────────────
    payment_method: str = "stripe"
    fulfillment_precheck_enabled: bool = True

    # ── Read cache ──────────────────────────────────────────────────
    cache_ttl_seconds: int = 300         # 5 minutes

    # ── Notifications ───────────────────────────────────────────────
    notification_transport: str = "log"  # "log" | "webhook"
    notification_webhook_url: str = ""
    notification_timeout_seconds: float = 5.0
    notifications_in_background: bool = False
    operator_email: str = "orders@localhost"

    # ── Application ─────────────────────────────────────────────────
    environment: str = "development"

    # ── CORS ────────────────────────────────────────────────────────
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # allow unknown .env keys without crashing
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    def validate_production_settings(self):
        """
        Validate settings for production safety.

        Called during app startup.
        """
        if self.environment == "production":
            if "*" in self.cors_origins:
                raise ValueError(
                    "CORS_ORIGINS must not contain '*' in production. "
                    "Set explicit allowed origins."
                )
            if self.notification_transport == "webhook" and not self.notification_webhook_url:
                raise ValueError(
                    "NOTIFICATION_WEBHOOK_URL must be set when "
                    "NOTIFICATION_TRANSPORT=webhook."
                )
            if self.notification_transport not in ("log", "webhook"):
                raise ValueError(
                    f"Unknown NOTIFICATION_TRANSPORT: {self.notification_transport}"
                )
            logger.info("Production settings validated")
        else:
            warnings = []
            if self.notification_transport == "log":
                warnings.append("NOTIFICATION_TRANSPORT=log (messages are only logged)")
            if not self.fulfillment_precheck_enabled:
                warnings.append("FULFILLMENT_PRECHECK_ENABLED=false (every request opens a transaction)")
            if "*" in self.cors_origins:
                warnings.append("CORS_ORIGINS contains '*' (open access)")
            for w in warnings:
                logger.warning(f"{w}")


# Global settings instance
settings = Settings()
