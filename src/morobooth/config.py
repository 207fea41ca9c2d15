"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    admin_token: str
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    storage_bucket: str = "photos"
    local_db_path: str = "morobooth.db"
    counter_lock_timeout_seconds: float = 5.0
    remote_timeout_seconds: float = 5.0
    counter_remote_timeout_seconds: float = 1.0
    counter_remote_pause_seconds: float = 30.0
    local_busy_timeout_seconds: float = 5.0
    local_write_retries: int = 3
    local_retry_delay_seconds: float = 0.2
    signed_url_ttl_seconds: int = 86400
    signed_url_cache_ttl_seconds: int = 82800
    download_url_ttl_seconds: int = 3600
    rate_limit_max_requests: int = 10
    rate_limit_window_seconds: int = 60
    rate_limit_block_seconds: int = 300
    upload_delay_seconds: float = 0.5
    cors_allow_origins: str | None = None
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )

    @property
    def remote_configured(self) -> bool:
        """Return True when both Supabase URL and key are present."""
        return bool(self.supabase_url and self.supabase_service_key)


def parse_allowed_origins(raw: str | None) -> list[str]:
    """Parse CORS origins from env; empty or `*` allows every origin."""
    if raw is None:
        return ["*"]
    cleaned = raw.strip()
    if cleaned in {"", "*"}:
        return ["*"]
    origins: list[str] = []
    for chunk in cleaned.split(","):
        value = chunk.strip().rstrip("/")
        if value:
            origins.append(value)
    return origins or ["*"]
