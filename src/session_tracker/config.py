"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")

DEFAULT_AUTH_COOKIE_NAMES = (
    "sb-access-token",
    "sb-refresh-token",
    "session",
    "session_token",
    "auth-token",
    "csrf_token",
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    cron_secret: str
    principals_table: str = "profiles"
    dedup_merge_window_seconds: int = 300
    revoked_retention_days: int = 90
    max_session_age_days: int = 90
    resync_batch_size: int = 200
    geolocation_base_url: str = "http://ip-api.com/json"
    geolocation_timeout_seconds: float = 5.0
    auth_cookie_names: str | None = None
    rate_limit_window_seconds: int = 60
    rate_limit_max_requests: int = 30
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_cookie_names(raw: str | None) -> tuple[str, ...]:
    """Parse the comma-separated auth cookie list from env."""
    if raw is None:
        return DEFAULT_AUTH_COOKIE_NAMES
    names: list[str] = []
    for chunk in raw.split(","):
        value = chunk.strip()
        if value and value not in names:
            names.append(value)
    return tuple(names) or DEFAULT_AUTH_COOKIE_NAMES
