from __future__ import annotations

import logging
import re
import sys
from contextlib import suppress
from contextvars import ContextVar
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog

from auth_transport.config import get_settings

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

REDACTED = "***REDACTED***"


def set_request_id(rid: str | None) -> None:
    request_id_var.set(rid)


_JWT_RE = re.compile(r"\beyJ[a-zA-Z0-9_\-]+\.[a-zA-Z0-9_\-]+\.[a-zA-Z0-9_\-]+\b")
_BEARER_RE = re.compile(r"(?i)\bBearer\s+([A-Za-z0-9_\-\.=~+/]+)")
_JSON_TOKEN_RE = re.compile(
    r"(?i)(\"(?:accessToken|access_token|refreshToken|refresh_token|password)\"\s*:\s*\")([^\"]*)(\")"
)
_KV_RE = re.compile(
    r"(?i)\b(accessToken|access_token|refreshToken|refresh_token|token|password|secret)\b\s*=\s*([^\s,;]+)"
)

_SENSITIVE_KEYS = {
    "authorization",
    "cookie",
    "set-cookie",
    "accesstoken",
    "access_token",
    "refreshtoken",
    "refresh_token",
    "token",
    "password",
}


def _secret_literals() -> list[str]:
    """
    Return configured secret values that must never appear in logs.
    Safe even if settings are not fully initialized yet.
    """
    vals: list[str] = []
    with suppress(Exception):
        sec = get_settings().secret
        for name in ("auth_password", "devserver_user_password"):
            v = getattr(sec, name, None)
            if v is not None and hasattr(v, "get_secret_value"):
                raw = str(v.get_secret_value() or "")
                if raw:
                    vals.append(raw)

    # Ignore tiny values to avoid over-redaction.
    out: list[str] = []
    for v in vals:
        if len(v) >= 8 and v not in out:
            out.append(v)
    return out


def _redact_str(s: str) -> str:
    with suppress(Exception):
        for lit in _secret_literals():
            if lit in s:
                s = s.replace(lit, REDACTED)
    s = _JWT_RE.sub(REDACTED, s)
    s = _BEARER_RE.sub(f"Bearer {REDACTED}", s)
    s = _JSON_TOKEN_RE.sub(lambda m: f"{m.group(1)}{REDACTED}{m.group(3)}", s)
    s = _KV_RE.sub(lambda m: f"{m.group(1)}={REDACTED}", s)
    return s


def safe_log_data(obj: Any) -> Any:
    """
    Redacted deep copy of `obj` for logging (headers, bodies, nested dicts/lists).
    """
    if isinstance(obj, str):
        return _redact_str(obj)
    if isinstance(obj, dict):
        out: dict[Any, Any] = {}
        for k, v in obj.items():
            if str(k).strip().lower() in _SENSITIVE_KEYS:
                out[k] = REDACTED
            else:
                out[k] = safe_log_data(v)
        return out
    if isinstance(obj, (list, tuple)):
        return [safe_log_data(v) for v in obj]
    return obj


def redact_event(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    for k, v in list(event_dict.items()):
        if str(k).lower() in _SENSITIVE_KEYS:
            event_dict[k] = REDACTED
        elif isinstance(v, str):
            event_dict[k] = _redact_str(v)
    return event_dict


def add_contextvars(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    rid = request_id_var.get()
    if rid:
        event_dict.setdefault("request_id", rid)
    return event_dict


def rename_event_to_msg(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    if "msg" not in event_dict and "event" in event_dict:
        event_dict["msg"] = event_dict.pop("event")
    return event_dict


def _configure_structlog() -> structlog.stdlib.BoundLogger:
    s = get_settings()
    level = str(s.log_level).upper()

    root = logging.getLogger()
    root.setLevel(level)

    # Avoid duplicates if re-imported
    if getattr(root, "_auth_transport_structlog_configured", False):
        return structlog.get_logger("auth_transport")

    foreign_pre_chain = [
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
        structlog.stdlib.add_log_level,
        add_contextvars,
        redact_event,
        structlog.processors.format_exc_info,
        rename_event_to_msg,
    ]

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.processors.JSONRenderer(),
        foreign_pre_chain=foreign_pre_chain,
    )

    handlers: list[logging.Handler] = []
    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    handlers.append(stream_handler)

    if s.log_dir is not None:
        log_path = Path(s.log_dir) / "transport.log"
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            filename=str(log_path),
            maxBytes=int(s.log_max_bytes),
            backupCount=int(s.log_backup_count),
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    root.handlers.clear()
    for h in handlers:
        root.addHandler(h)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            structlog.stdlib.add_log_level,
            add_contextvars,
            redact_event,
            structlog.processors.format_exc_info,
            rename_event_to_msg,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root._auth_transport_structlog_configured = True
    return structlog.get_logger("auth_transport")


logger = _configure_structlog()


def set_log_level(level: str) -> None:
    """
    Runtime log level override (CLI convenience).
    Does not change handlers/formatters; only raises/lowers filtering level.
    """
    lvl = getattr(logging, str(level).upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(lvl)
    for h in root.handlers:
        h.setLevel(lvl)
