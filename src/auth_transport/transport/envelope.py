from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx


@dataclass(slots=True)
class RequestEnvelope:
    """
    An outbound request plus its retry state.

    The envelope is rebuilt into a fresh `httpx.Request` on every attempt so the
    replay carries the new Authorization header. `retried` flips False -> True
    at most once; it is the only guard against refresh loops.
    """

    method: str
    url: str
    params: Any = None
    headers: dict[str, str] | None = None
    json: Any = None
    content: bytes | str | None = None
    data: Any = None
    files: Any = None
    extensions: dict[str, Any] | None = None
    timeout: float | None = None
    retried: bool = field(default=False)

    def mark_retried(self) -> None:
        if self.retried:
            raise RuntimeError("request envelope already replayed once")
        self.retried = True

    def build(self, client: httpx.AsyncClient, *, token: str | None) -> httpx.Request:
        headers = dict(self.headers or {})
        # Caller-supplied Authorization is replaced by the session token.
        for k in [k for k in headers if k.lower() == "authorization"]:
            headers.pop(k)
        if token:
            headers["Authorization"] = f"Bearer {token}"
        kwargs: dict[str, Any] = {}
        if self.timeout is not None:
            kwargs["timeout"] = float(self.timeout)
        return client.build_request(
            self.method.upper(),
            self.url,
            params=self.params,
            headers=headers,
            json=self.json,
            content=self.content,
            data=self.data,
            files=self.files,
            extensions=self.extensions,
            **kwargs,
        )


def _norm_path(path: str) -> str:
    p = str(path or "/").rstrip("/")
    return p or "/"


def targets_endpoint(request: httpx.Request, endpoint: httpx.URL) -> bool:
    """True when `request` is addressed to `endpoint` (host and path; query ignored)."""
    url = request.url
    return (
        url.host == endpoint.host
        and url.port == endpoint.port
        and _norm_path(url.path) == _norm_path(endpoint.path)
    )
