from __future__ import annotations

import json

from auth_transport.config import get_settings
from auth_transport.utils.log import (
    REDACTED,
    _redact_str,
    add_contextvars,
    redact_event,
    rename_event_to_msg,
    safe_log_data,
    set_request_id,
)


def test_log_redaction_tokens() -> None:
    jwt = "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9.aaaa.bbbb"
    payload = {
        "headers": {"Authorization": f"Bearer {jwt}", "Cookie": "refreshToken=cookievalue"},
        "response": {"Set-Cookie": "refreshToken=rotatedvalue; Path=/; HttpOnly"},
        "body": '{"accessToken": "opaque-access-value", "user": "dev"}',
        "note": f"sent Bearer plainbearervalue then {jwt}",
        "attempts": [{"token": "listvalue"}],
        "path": "/api/v1/echo",
    }
    redacted = safe_log_data(payload)
    s = json.dumps(redacted)
    for leaked in (
        jwt,
        "cookievalue",
        "rotatedvalue",
        "opaque-access-value",
        "plainbearervalue",
        "listvalue",
    ):
        assert leaked not in s
    assert redacted["headers"]["Authorization"] == REDACTED
    assert redacted["path"] == "/api/v1/echo"
    assert '"user": "dev"' in redacted["body"]


def test_log_redaction_key_value_pairs() -> None:
    out = _redact_str("refreshToken=R1; Path=/, password=hunter2 ok")
    assert "R1" not in out
    assert "hunter2" not in out
    assert out.endswith(" ok")


def test_log_redaction_secret_literals(monkeypatch) -> None:
    monkeypatch.setenv("AUTH_PASSWORD", "super-secret-value-12345")
    get_settings.cache_clear()
    redacted = safe_log_data({"msg": "login with super-secret-value-12345 failed"})
    s = json.dumps(redacted)
    assert "super-secret-value-12345" not in s
    # the devserver seed password configured for tests is a literal too
    assert "dev-password-123" not in _redact_str("seed dev-password-123")


def test_redact_event_processor() -> None:
    ev = {"event": "auth_refresh_failed", "authorization": "Bearer abc", "error": "Bearer abc rejected"}
    out = rename_event_to_msg(None, None, redact_event(None, None, ev))
    assert out["authorization"] == REDACTED
    assert "abc" not in out["error"]
    assert out["msg"] == "auth_refresh_failed"
    assert "event" not in out


def test_request_id_is_added_from_context() -> None:
    set_request_id("rid-123")
    try:
        assert add_contextvars(None, None, {})["request_id"] == "rid-123"
    finally:
        set_request_id(None)
    assert "request_id" not in add_contextvars(None, None, {})
