from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    environment: str = "dev"
    base_url: str = "http://localhost:8000"
    secret_key: str = "change-me"

    database_url: str = "sqlite:///./receipt_intake.db"
    redis_url: str = "redis://localhost:6379/0"

    # Default extraction webhook; a per-upload override wins over this.
    extraction_webhook_url: str | None = None
    extraction_timeout_s: float = 60.0
    # When unset the callback address is derived from the incoming request.
    callback_base_url: str | None = None

    max_upload_bytes: int = 10 * 1024 * 1024

    # 0 disables the stale-processing reaper.
    processing_timeout_minutes: int = 0
    reaper_interval_seconds: int = 300

    storage_backend: Literal["local", "s3"] = "local"
    local_storage_path: Path = Path(".local_storage")

    s3_endpoint_url: str | None = None
    s3_region: str | None = None
    s3_bucket: str = "receipt-intake"
    s3_access_key_id: str | None = None
    s3_secret_access_key: str | None = None

    init_admin_email: str | None = None
    init_admin_password: str | None = None

    access_token_exp_minutes: int = 60 * 24


settings = Settings()
