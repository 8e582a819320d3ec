from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Any
from urllib.parse import urlparse

from pydantic import SecretStr

from .public_config import PublicConfig
from .secret_config import SecretConfig


class ConfigError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class Settings:
    """
    Merged settings view (dot-access).

    Precedence:
      - secrets override public when names overlap
    """

    public: PublicConfig
    secret: SecretConfig

    def __getattr__(self, name: str) -> Any:
        if hasattr(self.secret, name):
            return getattr(self.secret, name)
        return getattr(self.public, name)

    def base_url(self) -> str:
        return self.public.base_url()

    def url_for(self, path: str) -> str:
        p = str(path or "")
        if p.startswith(("http://", "https://")):
            return p
        if not p.startswith("/"):
            p = "/" + p
        return self.base_url() + p


def _validate(s: Settings) -> None:
    problems: list[str] = []

    parsed = urlparse(s.public.base_url())
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        problems.append("API_BASE_URL")
    for name, path in (
        ("AUTH_REFRESH_PATH", s.public.refresh_path),
        ("AUTH_LOGIN_PATH", s.public.login_path),
        ("AUTH_LOGOUT_PATH", s.public.logout_path),
        ("AUTH_ME_PATH", s.public.me_path),
    ):
        if not str(path or "").startswith("/"):
            problems.append(name)
    if float(s.public.refresh_timeout_s) <= 0:
        problems.append("AUTH_REFRESH_TIMEOUT_S")
    if float(s.public.http_timeout_s) <= 0:
        problems.append("HTTP_TIMEOUT_S")

    if problems:
        raise ConfigError(
            "Invalid configuration: "
            + ", ".join(sorted(set(problems)))
            + ". Set them via environment variables or `.env`."
        )

    if parsed.scheme == "http" and parsed.hostname not in {"localhost", "127.0.0.1", "::1"}:
        logging.getLogger("auth_transport").warning(
            "insecure_api_base_url",
            extra={"host": parsed.hostname},
        )


def get_safe_config_report() -> dict[str, Any]:
    """
    Deterministic, non-sensitive config report.

    - Public values are included (paths are stringified)
    - Secret values are NEVER included; only SET/UNSET markers
    """
    s = get_settings()

    pub = s.public.model_dump()
    pub_s: dict[str, Any] = {}
    for k, v in pub.items():
        pub_s[k] = str(v) if hasattr(v, "__fspath__") else v

    sec: dict[str, str] = {}
    for k in sorted(type(s.secret).model_fields.keys()):
        v = getattr(s.secret, k, None)
        if v is None:
            sec[k] = "UNSET"
        elif isinstance(v, SecretStr):
            sec[k] = "SET" if v.get_secret_value() else "UNSET"
        else:
            sec[k] = "SET" if str(v).strip() else "UNSET"

    return {
        "env": str(os.environ.get("APP_ENV") or "dev"),
        "public": pub_s,
        "secrets": sec,
    }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    public = PublicConfig()
    secret = SecretConfig()
    s = Settings(public=public, secret=secret)
    _validate(s)
    return s

