from __future__ import annotations

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class SecretConfig(BaseSettings):
    """
    Sensitive config.

    This module is safe to commit: it contains *no* secrets, only loading logic.
    Real secret values should come from:
      - environment variables (preferred)
      - optional local `.env.secrets` file (developer convenience)
    """

    model_config = SettingsConfigDict(
        env_file=".env.secrets",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # CLI login credentials (optional; the CLI prompts when unset)
    auth_email: str | None = Field(default=None, alias="AUTH_EMAIL")
    auth_password: SecretStr | None = Field(default=None, alias="AUTH_PASSWORD")

    # reference backend seed user
    devserver_user_email: str = Field(default="dev@example.com", alias="DEVSERVER_USER_EMAIL")
    devserver_user_password: SecretStr = Field(
        default=SecretStr("dev-insecure-password"), alias="DEVSERVER_USER_PASSWORD"
    )
