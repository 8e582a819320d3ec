from __future__ import annotations

from http.cookiejar import CookieJar

import httpx

from auth_transport.config import Settings
from auth_transport.errors import AuthFailed
from auth_transport.utils.log import logger


def _extract_token(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError as ex:
        raise AuthFailed("refresh response is not JSON", response=response) from ex
    token = body.get("accessToken") if isinstance(body, dict) else None
    if not isinstance(token, str) or not token.strip():
        raise AuthFailed("refresh response missing accessToken", response=response)
    return token.strip()


class RawTransport:
    """
    Issues the token refresh call.

    Uses its own `httpx.AsyncClient`, never the intercepting transport: a
    failing refresh must not trigger another refresh. The only credential it
    sends is the ambient refresh cookie from the shared cookie jar.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        cookies: CookieJar | None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.refresh_url = httpx.URL(settings.url_for(settings.refresh_path))
        # Without credentials the raw client keeps a private jar; the session cookie never reaches it.
        jar = cookies if (cookies is not None and settings.refresh_with_credentials) else None
        self._client = httpx.AsyncClient(
            cookies=jar,
            headers={"Accept": "application/json"},
            timeout=httpx.Timeout(float(settings.refresh_timeout_s)),
            transport=transport,
            follow_redirects=False,
        )

    async def refresh(self) -> str:
        """POST the refresh endpoint; return the new access token or raise AuthFailed."""
        try:
            resp = await self._client.post(self.refresh_url, json={})
        except httpx.TransportError as ex:
            logger.warning("auth_refresh_network_error", error=type(ex).__name__)
            raise AuthFailed(f"refresh request failed: {type(ex).__name__}") from ex
        if not resp.is_success:
            raise AuthFailed(f"refresh rejected with status {resp.status_code}", response=resp)
        return _extract_token(resp)

    async def aclose(self) -> None:
        await self._client.aclose()
