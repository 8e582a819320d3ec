from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PublicConfig(BaseSettings):
    """
    Non-sensitive config with safe defaults.

    Loaded from (in order):
      - process env
      - optional `.env` file
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # --- backend ---
    api_base_url: str = Field(default="http://localhost:3000/api/v1", alias="API_BASE_URL")
    http_timeout_s: float = Field(default=30.0, alias="HTTP_TIMEOUT_S")

    # --- auth endpoints (relative to API_BASE_URL) ---
    refresh_path: str = Field(default="/auth/refresh", alias="AUTH_REFRESH_PATH")
    login_path: str = Field(default="/auth/login", alias="AUTH_LOGIN_PATH")
    logout_path: str = Field(default="/auth/logout", alias="AUTH_LOGOUT_PATH")
    me_path: str = Field(default="/auth/me", alias="AUTH_ME_PATH")

    # --- refresh behavior ---
    # Send the refresh cookie with refresh calls (browser `withCredentials`).
    refresh_with_credentials: bool = Field(default=True, alias="AUTH_REFRESH_WITH_CREDENTIALS")
    auto_refresh: bool = Field(default=True, alias="AUTH_AUTO_REFRESH")
    # Upper bound on how long callers wait behind an in-flight refresh.
    refresh_timeout_s: float = Field(default=10.0, alias="AUTH_REFRESH_TIMEOUT_S")

    # --- logging ---
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_dir: Path | None = Field(default=None, alias="AUTH_LOG_DIR")
    log_max_bytes: int = Field(default=5 * 1024 * 1024, alias="AUTH_LOG_MAX_BYTES")
    log_backup_count: int = Field(default=3, alias="AUTH_LOG_BACKUP_COUNT")

    # --- reference backend (local development only) ---
    devserver_host: str = Field(default="127.0.0.1", alias="DEVSERVER_HOST")
    devserver_port: int = Field(default=3000, alias="DEVSERVER_PORT")
    devserver_access_ttl_s: int = Field(default=900, alias="DEVSERVER_ACCESS_TTL_S")
    devserver_refresh_ttl_s: int = Field(default=7 * 86400, alias="DEVSERVER_REFRESH_TTL_S")
    cookie_secure: bool = Field(default=False, alias="COOKIE_SECURE")

    def base_url(self) -> str:
        return str(self.api_base_url or "").rstrip("/")
