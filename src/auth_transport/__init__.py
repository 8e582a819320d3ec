from __future__ import annotations

from .account import AccountService
from .errors import (
    AuthExpired,
    AuthFailed,
    ErrorKind,
    LoginFailed,
    NetworkError,
    OtherHTTPError,
    TransportError,
    raise_for_status,
)
from .notify import SESSION_EXPIRED, SessionExpiryNotifier
from .session import AuthSession
from .tokens import TokenStore
from .transport import (
    InterceptingTransport,
    RawTransport,
    RefreshCoordinator,
    RefreshState,
    RequestEnvelope,
)

__all__ = [
    "AccountService",
    "AuthExpired",
    "AuthFailed",
    "AuthSession",
    "ErrorKind",
    "InterceptingTransport",
    "LoginFailed",
    "NetworkError",
    "OtherHTTPError",
    "RawTransport",
    "RefreshCoordinator",
    "RefreshState",
    "RequestEnvelope",
    "SESSION_EXPIRED",
    "SessionExpiryNotifier",
    "TokenStore",
    "TransportError",
    "raise_for_status",
]
