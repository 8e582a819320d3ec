from __future__ import annotations

from http.cookiejar import CookieJar
from typing import Any

import httpx

from auth_transport.config import Settings, get_settings
from auth_transport.notify import SessionExpiryNotifier
from auth_transport.tokens import TokenStore
from auth_transport.transport import (
    InterceptingTransport,
    RawTransport,
    RefreshCoordinator,
    RequestEnvelope,
)


class AuthSession:
    """
    One authenticated application session.

    Owns the token store, the refresh cookie jar, the session-expiry notifier
    and one refresh coordinator; every request made through `perform` shares
    them by reference. Use as an async context manager, or call `aclose()`.

    `transport` is handed to both HTTP clients (tests pass `httpx.MockTransport`
    or `httpx.ASGITransport`).
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        notifier: SessionExpiryNotifier | None = None,
    ) -> None:
        s = settings or get_settings()
        self.settings = s
        self.cookies = CookieJar()
        self.tokens = TokenStore()
        self.notifier = notifier or SessionExpiryNotifier()

        self.client = httpx.AsyncClient(
            base_url=s.base_url(),
            cookies=self.cookies,
            headers={"Accept": "application/json"},
            timeout=httpx.Timeout(float(s.http_timeout_s)),
            transport=transport,
        )
        self.raw = RawTransport(s, cookies=self.cookies, transport=transport)
        self.coordinator = RefreshCoordinator(
            refresher=self.raw,
            tokens=self.tokens,
            notifier=self.notifier,
            timeout_s=float(s.refresh_timeout_s),
        )
        self.api = InterceptingTransport(
            client=self.client,
            tokens=self.tokens,
            coordinator=self.coordinator,
            notifier=self.notifier,
            auth_endpoints=(
                self.raw.refresh_url,
                httpx.URL(s.url_for(s.login_path)),
            ),
            auto_refresh=bool(s.auto_refresh),
        )

    async def perform(self, envelope: RequestEnvelope) -> httpx.Response:
        return await self.api.perform(envelope)

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        return await self.api.request(method, url, **kwargs)

    async def aclose(self) -> None:
        await self.coordinator.aclose()
        await self.client.aclose()
        await self.raw.aclose()

    async def __aenter__(self) -> "AuthSession":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()
