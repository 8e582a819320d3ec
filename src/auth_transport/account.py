from __future__ import annotations

from typing import Any

import httpx

from auth_transport.errors import AuthFailed, LoginFailed, TransportError
from auth_transport.session import AuthSession
from auth_transport.utils.log import logger


def _json_body(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _server_message(response: httpx.Response | None, default: str) -> str:
    if response is None:
        return default
    msg = _json_body(response).get("message")
    return str(msg) if msg else default


class AccountService:
    """
    Login, logout, current-user and startup bootstrap on top of an `AuthSession`.

    Expected backend contract:
      POST /auth/login  {"email", "password"} -> {"success", "accessToken", "user"}
      POST /auth/logout                       -> clears the refresh cookie
      GET  /auth/me                           -> {"success", "user"}
    """

    def __init__(self, session: AuthSession) -> None:
        self._session = session
        self.user: dict[str, Any] | None = None

    async def bootstrap(self) -> bool:
        """
        Restore a session from the refresh cookie alone (app startup).

        Runs through the coordinator, so requests that hit 401 meanwhile wait
        for this refresh instead of starting their own. A failure means an
        anonymous visitor, not an expired session: the session-expiry notifier
        only fires if one of those requests was waiting on it.
        """
        s = self._session
        try:
            await s.coordinator.acquire(notify=False)
        except AuthFailed as ex:
            logger.info("auth_bootstrap_anonymous", status=ex.status_code)
            return False
        self.user = await self.fetch_me()
        return True

    async def login(self, email: str, password: str) -> dict[str, Any]:
        s = self._session
        try:
            resp = await s.request(
                "POST",
                s.settings.login_path,
                json={"email": str(email).strip().lower(), "password": password},
            )
        except AuthFailed as ex:
            raise LoginFailed(_server_message(ex.response, "Invalid credentials"), response=ex.response) from ex

        data = _json_body(resp)
        if not resp.is_success or not data.get("success"):
            raise LoginFailed(_server_message(resp, "Login failed"), response=resp)

        token = data.get("accessToken")
        if not isinstance(token, str) or not token.strip():
            raise LoginFailed("login response missing accessToken", response=resp)
        s.tokens.set(token)

        user = data.get("user")
        if isinstance(user, dict):
            self.user = user
        else:
            self.user = await self.fetch_me()
        logger.info("auth_login_ok", user_id=str((self.user or {}).get("_id") or ""))
        return dict(self.user or {})

    async def logout(self) -> None:
        s = self._session
        try:
            await s.request("POST", s.settings.logout_path)
        except TransportError as ex:
            # The local session ends regardless of what the server says.
            logger.info("auth_logout_request_failed", error=str(ex), kind=ex.kind.value)
        finally:
            s.tokens.clear()
            self.user = None
            logger.info("auth_logout")

    async def fetch_me(self) -> dict[str, Any] | None:
        s = self._session
        try:
            resp = await s.request("GET", s.settings.me_path)
        except TransportError as ex:
            logger.info("auth_fetch_me_failed", error=str(ex), kind=ex.kind.value)
            return None
        data = _json_body(resp)
        if resp.is_success and data.get("success") and isinstance(data.get("user"), dict):
            return data["user"]
        return None
