from __future__ import annotations

from enum import Enum

import httpx


class ErrorKind(str, Enum):
    network = "network"
    auth_expired = "auth_expired"
    auth_failed = "auth_failed"
    http = "http"


class TransportError(RuntimeError):
    """
    Base class for everything `perform` raises.

    `response` is set when the server answered; it is None for network failures.
    """

    kind: ErrorKind = ErrorKind.http

    def __init__(self, message: str, *, response: httpx.Response | None = None) -> None:
        super().__init__(message)
        self.response = response

    @property
    def status_code(self) -> int | None:
        return self.response.status_code if self.response is not None else None


class NetworkError(TransportError):
    """No response received. Never triggers a refresh."""

    kind = ErrorKind.network


class AuthExpired(TransportError):
    """401 on a fresh request; only surfaced when automatic refresh is disabled."""

    kind = ErrorKind.auth_expired


class AuthFailed(TransportError):
    """Terminal: the refresh failed, or a replayed request was rejected again."""

    kind = ErrorKind.auth_failed


class OtherHTTPError(TransportError):
    kind = ErrorKind.http


class LoginFailed(TransportError):
    kind = ErrorKind.http


def raise_for_status(response: httpx.Response) -> httpx.Response:
    """
    Convert a non-2xx response into `OtherHTTPError` (401 into `AuthFailed`).

    `perform` hands non-401 responses back unchanged; callers that want
    exceptions for them opt in here.
    """
    if response.is_success:
        return response
    if response.status_code == 401:
        raise AuthFailed("not authenticated", response=response)
    raise OtherHTTPError(
        f"{response.request.method} {response.request.url} -> {response.status_code}",
        response=response,
    )
