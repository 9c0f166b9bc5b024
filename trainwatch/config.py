"""
Application configuration using environment variables.
"""
import os
import secrets
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional

_GENERATED_SECRET = secrets.token_urlsafe(32)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "TrainWatch API"
    debug: bool = False
    environment: str = "development"
    app_url: str = "https://trainwatch.app"

    # Security
    secret_key: str = os.getenv("SECRET_KEY", _GENERATED_SECRET)
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60  # 1 hour
    refresh_token_expire_days: int = 7

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./trainwatch.db")

    # CORS
    cors_origins: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    # Rate limiting
    login_rate_limit: str = "5/minute"
    register_rate_limit: str = "3/minute"

    # Subscription
    trial_days: int = 7
    billing_webhook_secret: Optional[str] = None

    # Mail
    sendgrid_api_key: Optional[str] = None
    sendgrid_api_url: str = "https://api.sendgrid.com/v3/mail/send"
    alert_from_email: str = "alerts@trainwatch.app"
    mail_timeout_seconds: float = 10.0

    # Expiry alerts
    alert_scheduler_enabled: bool = True
    alert_scan_interval_hours: float = 24.0
    alert_warmup_seconds: float = 60.0
    alert_warning_days: int = 5
    alert_scan_mode: str = "window"  # window or exact
    max_delivery_attempts: int = 3
    retry_base_minutes: int = 60


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Validate secret key on startup
settings = get_settings()
if settings.environment == "production" and settings.secret_key == _GENERATED_SECRET:
    raise ValueError(
        "SECRET_KEY must be set in production! "
        "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
    )
