from __future__ import annotations

from typing import Any

import httpx

from auth_transport.errors import AuthExpired, AuthFailed, NetworkError
from auth_transport.notify import SessionExpiryNotifier
from auth_transport.tokens import TokenStore
from auth_transport.transport.coordinator import RefreshCoordinator
from auth_transport.transport.envelope import RequestEnvelope, targets_endpoint
from auth_transport.utils.log import logger


class InterceptingTransport:
    """
    Wraps an `httpx.AsyncClient`: attaches the bearer token, recovers from a
    401 by refreshing once through the coordinator, then replays the request.

    Non-401 responses (including other 4xx/5xx) are returned unchanged.
    Network failures raise `NetworkError` and never trigger a refresh.
    A 401 from one of `auth_endpoints` (refresh, login) raises `AuthFailed`
    at once: those calls are never refreshed or replayed.
    """

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        tokens: TokenStore,
        coordinator: RefreshCoordinator,
        notifier: SessionExpiryNotifier,
        auth_endpoints: tuple[httpx.URL, ...],
        auto_refresh: bool = True,
    ) -> None:
        self._client = client
        self._tokens = tokens
        self._coordinator = coordinator
        self._notifier = notifier
        self._auth_endpoints = tuple(auth_endpoints)
        self._auto_refresh = bool(auto_refresh)

    async def perform(self, envelope: RequestEnvelope) -> httpx.Response:
        token = self._tokens.get()
        request = envelope.build(self._client, token=token)
        response = await self._send(request)
        if response.status_code != 401:
            return response

        if any(targets_endpoint(request, ep) for ep in self._auth_endpoints):
            raise AuthFailed("auth endpoint rejected the request", response=response)
        if envelope.retried:
            self._expire_if_current(token)
            raise AuthFailed("request rejected after token refresh", response=response)
        if not self._auto_refresh:
            raise AuthExpired("access token rejected", response=response)

        new_token = await self._coordinator.acquire(stale_token=token)

        envelope.mark_retried()
        replay = envelope.build(self._client, token=new_token)
        logger.info("auth_request_replayed", method=replay.method, path=replay.url.path)
        response = await self._send(replay)
        if response.status_code == 401:
            self._expire_if_current(new_token)
            raise AuthFailed("request rejected after token refresh", response=response)
        return response

    def _expire_if_current(self, token: str | None) -> None:
        # Concurrent replays share one token; only the first to clear it notifies.
        if token and self._tokens.get() == token:
            self._tokens.clear()
            self._notifier.fire()

    async def _send(self, request: httpx.Request) -> httpx.Response:
        try:
            return await self._client.send(request)
        except httpx.TransportError as ex:
            logger.warning(
                "auth_network_error",
                method=request.method,
                path=request.url.path,
                error=type(ex).__name__,
            )
            raise NetworkError(f"{request.method} {request.url}: {type(ex).__name__}") from ex

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        return await self.perform(RequestEnvelope(method=method, url=url, **kwargs))

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", url, **kwargs)

    async def patch(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PATCH", url, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)
