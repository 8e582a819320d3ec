"""
In-memory reference backend for local development and integration tests.

Implements the auth contract the transport expects:
  POST /auth/login    -> {"success", "accessToken", "user"} + HttpOnly `refreshToken` cookie
  POST /auth/refresh  -> {"accessToken"}; rotates the cookie (single use)
  POST /auth/logout   -> revokes the cookie
  GET  /auth/me       -> {"success", "user"} (bearer)
  GET  /echo          -> protected sample resource (bearer)

Reusing an already-rotated refresh token revokes every refresh token of that
user and answers 403. Nothing is persisted.
"""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from auth_transport.config import Settings, get_settings
from auth_transport.utils.log import logger

REFRESH_COOKIE = "refreshToken"

bearer = HTTPBearer(auto_error=False)


@dataclass(slots=True)
class _RefreshRecord:
    user_id: str
    expires_at: float
    revoked: bool = False
    replaced_by: str | None = None


class RefreshRejected(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


@dataclass
class DevAuthState:
    access_ttl_s: int
    refresh_ttl_s: int
    users: dict[str, dict[str, Any]] = field(default_factory=dict)
    access: dict[str, tuple[str, float]] = field(default_factory=dict)
    refresh: dict[str, _RefreshRecord] = field(default_factory=dict)
    refresh_calls: int = 0

    def add_user(self, email: str, password: str, **fields: Any) -> dict[str, Any]:
        email = str(email).strip().lower()
        user = {
            "_id": secrets.token_hex(12),
            "email": email,
            "firstName": fields.pop("firstName", email.split("@", 1)[0]),
            "role": fields.pop("role", "student"),
            **fields,
        }
        self.users[email] = {"user": user, "password": password}
        return dict(user)

    def authenticate(self, email: str, password: str) -> dict[str, Any] | None:
        rec = self.users.get(str(email or "").strip().lower())
        if rec is None or not secrets.compare_digest(str(rec["password"]), str(password or "")):
            return None
        return dict(rec["user"])

    def user_by_id(self, user_id: str) -> dict[str, Any] | None:
        for rec in self.users.values():
            if rec["user"]["_id"] == user_id:
                return dict(rec["user"])
        return None

    def issue_access(self, user_id: str) -> str:
        tok = secrets.token_urlsafe(24)
        self.access[tok] = (user_id, time.time() + self.access_ttl_s)
        return tok

    def issue_refresh(self, user_id: str) -> str:
        tok = secrets.token_urlsafe(32)
        self.refresh[tok] = _RefreshRecord(user_id=user_id, expires_at=time.time() + self.refresh_ttl_s)
        return tok

    def user_for_access(self, token: str | None) -> dict[str, Any] | None:
        rec = self.access.get(str(token or ""))
        if rec is None:
            return None
        user_id, exp = rec
        if time.time() > exp:
            self.access.pop(str(token), None)
            return None
        return self.user_by_id(user_id)

    def rotate(self, refresh_token: str | None) -> tuple[str, str]:
        """Return (user_id, new_refresh_token) or raise RefreshRejected."""
        if not refresh_token:
            raise RefreshRejected(401, "No refresh token")
        rec = self.refresh.get(refresh_token)
        if rec is None:
            raise RefreshRejected(401, "Invalid refresh token")
        if rec.revoked:
            if rec.replaced_by:
                self.revoke_all(rec.user_id)
                raise RefreshRejected(403, "Token reuse detected. Please login again.")
            raise RefreshRejected(401, "Refresh token revoked")
        if time.time() > rec.expires_at:
            rec.revoked = True
            raise RefreshRejected(401, "Refresh token expired")
        new_tok = self.issue_refresh(rec.user_id)
        rec.revoked = True
        rec.replaced_by = new_tok
        return rec.user_id, new_tok

    def revoke(self, refresh_token: str | None) -> None:
        rec = self.refresh.get(str(refresh_token or ""))
        if rec is not None:
            rec.revoked = True

    def revoke_all(self, user_id: str) -> None:
        for rec in self.refresh.values():
            if rec.user_id == user_id:
                rec.revoked = True

    def expire_access_tokens(self) -> None:
        """Invalidate every issued access token (simulates expiry)."""
        self.access.clear()


def _state(request: Request) -> DevAuthState:
    st = getattr(request.app.state, "auth", None)
    if st is None:
        raise HTTPException(status_code=500, detail="Auth state not initialized")
    return st


def _set_refresh_cookie(resp: Response, token: str, *, s: Settings) -> None:
    resp.set_cookie(
        REFRESH_COOKIE,
        token,
        httponly=True,
        samesite="lax",
        secure=bool(s.cookie_secure),
        max_age=int(s.devserver_refresh_ttl_s),
        path="/",
    )


def _unauthorized(message: str = "Not authenticated") -> JSONResponse:
    return JSONResponse({"success": False, "message": message}, status_code=401)


async def current_user(
    request: Request,
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
) -> dict[str, Any]:
    user = _state(request).user_for_access(creds.credentials if creds else None)
    if user is None:
        raise HTTPException(status_code=401, detail="Access token invalid or expired")
    return user


def _auth_router(s: Settings) -> APIRouter:
    router = APIRouter(prefix="/auth", tags=["auth"])

    @router.post("/login")
    async def login(request: Request) -> Response:
        try:
            body = await request.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        st = _state(request)
        user = st.authenticate(str(body.get("email") or ""), str(body.get("password") or ""))
        if user is None:
            return _unauthorized("Invalid email or password")
        resp = JSONResponse(
            {"success": True, "accessToken": st.issue_access(user["_id"]), "user": user}
        )
        _set_refresh_cookie(resp, st.issue_refresh(user["_id"]), s=s)
        logger.info("devserver_login", user_id=user["_id"])
        return resp

    @router.post("/refresh")
    async def refresh(request: Request) -> Response:
        st = _state(request)
        st.refresh_calls += 1
        try:
            user_id, new_refresh = st.rotate(request.cookies.get(REFRESH_COOKIE))
        except RefreshRejected as ex:
            logger.info("devserver_refresh_rejected", status=ex.status_code, reason=ex.message)
            resp = JSONResponse({"message": ex.message}, status_code=ex.status_code)
            resp.delete_cookie(REFRESH_COOKIE, path="/")
            return resp
        resp = JSONResponse({"accessToken": st.issue_access(user_id)})
        _set_refresh_cookie(resp, new_refresh, s=s)
        return resp

    @router.post("/logout")
    async def logout(request: Request) -> Response:
        _state(request).revoke(request.cookies.get(REFRESH_COOKIE))
        resp = JSONResponse({"success": True, "message": "Logged out"})
        resp.delete_cookie(REFRESH_COOKIE, path="/")
        return resp

    @router.get("/me")
    async def me(user: dict[str, Any] = Depends(current_user)) -> dict[str, Any]:
        return {"success": True, "user": user}

    return router


def create_app(settings: Settings | None = None) -> FastAPI:
    s = settings or get_settings()
    app = FastAPI(title="auth-transport reference backend")
    app.state.auth = DevAuthState(
        access_ttl_s=int(s.devserver_access_ttl_s),
        refresh_ttl_s=int(s.devserver_refresh_ttl_s),
    )
    app.state.auth.add_user(
        s.devserver_user_email,
        s.devserver_user_password.get_secret_value(),
        firstName="Dev",
    )

    # Mount under the base URL path so API_BASE_URL works unchanged against it.
    prefix = urlparse(s.base_url()).path.rstrip("/")
    app.include_router(_auth_router(s), prefix=prefix)

    @app.get(prefix + "/echo")
    async def echo(request: Request, user: dict[str, Any] = Depends(current_user)) -> dict[str, Any]:
        return {"ok": True, "user_id": user["_id"], "query": dict(request.query_params)}

    @app.exception_handler(HTTPException)
    async def _http_error(_: Request, ex: HTTPException) -> JSONResponse:
        return JSONResponse({"success": False, "message": str(ex.detail)}, status_code=ex.status_code)

    return app


def main() -> None:
    import uvicorn

    s = get_settings()
    uvicorn.run(
        create_app(s),
        host=str(s.devserver_host),
        port=int(s.devserver_port),
        reload=False,
    )
