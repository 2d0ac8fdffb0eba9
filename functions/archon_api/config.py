"""
Configuration and settings for the ArchonPro API.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

BackendMode = Literal["live", "stub"]


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO")

    # "live" talks to Firebase/Stripe/S3/Gemini, "stub" keeps everything
    # in-process. Chosen once at startup, never per request.
    backend_mode: BackendMode = Field(default="stub")
    store_mode: Optional[BackendMode] = None
    storage_mode: Optional[BackendMode] = None
    billing_mode: Optional[BackendMode] = None
    ai_mode: Optional[BackendMode] = None

    # Firebase (auth + Firestore)
    firebase_service_account_key: Optional[str] = None
    firebase_project_id: Optional[str] = None

    # S3-compatible object storage
    storage_endpoint: Optional[str] = None
    storage_region: Optional[str] = None
    storage_bucket: Optional[str] = None
    storage_public_base_url: Optional[str] = None
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    max_upload_bytes: int = Field(default=10 * 1024 * 1024, gt=0)

    # Stripe
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    # {"pro_monthly": "price_...", "pro_yearly": "price_..."}
    stripe_prices: dict[str, str] = Field(default_factory=dict)
    stripe_trial_days: int = Field(default=14, ge=0)
    app_base_url: str = Field(default="http://localhost:3000")

    # LLM / Gemini
    gemini_api_key: Optional[str] = None
    gemini_model: str = Field(default="gemini-2.5-flash")

    def mode_for(self, adapter: str) -> BackendMode:
        """Resolve the mode of one adapter, falling back to backend_mode."""
        override = getattr(self, f"{adapter}_mode")
        return override or self.backend_mode


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
