from __future__ import annotations

import asyncio
import os

import httpx
from fastapi.responses import JSONResponse

from auth_transport.account import AccountService
from auth_transport.config import get_settings
from auth_transport.devserver import create_app
from auth_transport.errors import AuthFailed
from auth_transport.session import AuthSession


def _env() -> None:
    os.environ["API_BASE_URL"] = "http://testserver/api/v1"
    os.environ.setdefault("DEVSERVER_USER_EMAIL", "dev@example.com")
    os.environ.setdefault("DEVSERVER_USER_PASSWORD", "verify-password-123")
    os.environ["AUTH_AUTO_REFRESH"] = "1"
    os.environ["AUTH_REFRESH_WITH_CREDENTIALS"] = "1"


async def _run() -> None:
    get_settings.cache_clear()
    s = get_settings()
    email = s.devserver_user_email
    password = s.devserver_user_password.get_secret_value()

    app = create_app(s)

    async def _always_401() -> JSONResponse:
        return JSONResponse({"success": False, "message": "nope"}, status_code=401)

    app.add_api_route("/api/v1/always-401", _always_401, methods=["GET"])

    def _session() -> tuple[AuthSession, list[int]]:
        session = AuthSession(s, transport=httpx.ASGITransport(app=app))
        fired: list[int] = []
        session.notifier.subscribe(lambda: fired.append(1))
        return session, fired

    # A) three concurrent 401s -> one refresh, three replays
    session, fired = _session()
    async with session:
        await AccountService(session).login(email, password)
        app.state.auth.refresh_calls = 0
        app.state.auth.expire_access_tokens()
        results = await asyncio.gather(*(session.request("GET", "/echo") for _ in range(3)))
        assert [r.status_code for r in results] == [200, 200, 200], results
        assert app.state.auth.refresh_calls == 1, app.state.auth.refresh_calls
        assert fired == [], "unexpected session-expired"

    # B) refresh fails -> every caller rejected, one notification
    session, fired = _session()
    async with session:
        user = await AccountService(session).login(email, password)
        app.state.auth.refresh_calls = 0
        app.state.auth.revoke_all(user["_id"])
        app.state.auth.expire_access_tokens()
        results = await asyncio.gather(
            *(session.request("GET", "/echo") for _ in range(3)),
            return_exceptions=True,
        )
        assert all(isinstance(r, AuthFailed) for r in results), results
        assert app.state.auth.refresh_calls == 1, app.state.auth.refresh_calls
        assert fired == [1], f"expected one session-expired, got {len(fired)}"
        assert session.tokens.get() is None

    # C) replayed request rejected again -> no second refresh
    session, fired = _session()
    async with session:
        await AccountService(session).login(email, password)
        app.state.auth.refresh_calls = 0
        try:
            await session.request("GET", "/always-401")
        except AuthFailed:
            pass
        else:
            raise AssertionError("expected AuthFailed after replay")
        assert app.state.auth.refresh_calls == 1, app.state.auth.refresh_calls
        assert fired == [1], f"expected one session-expired, got {len(fired)}"
        assert session.tokens.get() is None


def main() -> int:
    _env()
    asyncio.run(_run())
    print("verify_refresh_single_flight: OK")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
