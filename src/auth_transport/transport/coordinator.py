from __future__ import annotations

import asyncio
from collections import deque
from contextlib import suppress
from enum import Enum
from typing import Protocol

from auth_transport.errors import AuthFailed
from auth_transport.notify import SessionExpiryNotifier
from auth_transport.tokens import TokenStore
from auth_transport.utils.log import logger


class RefreshState(str, Enum):
    idle = "idle"
    refreshing = "refreshing"


class Refresher(Protocol):
    async def refresh(self) -> str: ...


class RefreshCoordinator:
    """
    Single-flight token refresh.

    State machine: idle --(401 observed)--> refreshing --(refresh settles)--> idle.

    - At most one refresh call is in flight per coordinator.
    - Every caller of `acquire()` during a refreshing period is queued as a
      waiter (the caller that started the refresh is the first one) and is
      settled exactly once, in FIFO order, when that refresh settles.
    - On failure all waiters get the same `AuthFailed`, the token store is
      cleared and the session-expiry notifier fires once.

    The refresh runs in a task owned by the coordinator, so a cancelled caller
    only drops its own waiter. All state changes happen in synchronous blocks
    on the event loop thread; instances must not be shared across loops.
    """

    def __init__(
        self,
        *,
        refresher: Refresher,
        tokens: TokenStore,
        notifier: SessionExpiryNotifier,
        timeout_s: float,
    ) -> None:
        self._refresher = refresher
        self._tokens = tokens
        self._notifier = notifier
        self._timeout_s = float(timeout_s)
        self._state = RefreshState.idle
        self._waiters: deque[asyncio.Future[str]] = deque()
        self._task: asyncio.Task[None] | None = None
        self._notify_on_failure = True

    @property
    def state(self) -> RefreshState:
        return self._state

    @property
    def pending(self) -> int:
        return len(self._waiters)

    async def acquire(self, stale_token: str | None = None, *, notify: bool = True) -> str:
        """
        Return a fresh access token, starting a refresh only if none is running.

        `stale_token` is the token the rejected request was sent with (None if
        it went out without one). When the store already holds a different
        token, a refresh or login finished in between and that token is
        returned without another refresh call.

        `notify=False` joins the refresh without asking for a session-expired
        signal (startup bootstrap). A failure still notifies when any other
        waiter of the same refresh asked for it.
        """
        if self._state is RefreshState.idle:
            current = self._tokens.get()
            if current and current != stale_token:
                logger.debug("auth_refresh_skipped_token_rotated")
                return current

        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[str] = loop.create_future()
        self._waiters.append(waiter)

        if self._state is RefreshState.idle:
            self._state = RefreshState.refreshing
            self._notify_on_failure = notify
            self._task = loop.create_task(self._run(), name="auth.refresh")
            logger.info("auth_refresh_started", notify=notify)
        else:
            self._notify_on_failure = self._notify_on_failure or notify
            logger.debug("auth_waiter_enqueued", waiters=len(self._waiters))

        return await waiter

    async def _run(self) -> None:
        try:
            token = await asyncio.wait_for(self._refresher.refresh(), timeout=self._timeout_s)
            self._tokens.set(token)
        except asyncio.CancelledError:
            # Session shutdown: release waiters but do not report an expired session.
            self._settle(error=AuthFailed("refresh cancelled"))
            raise
        except asyncio.TimeoutError as ex:
            err = AuthFailed(f"refresh timed out after {self._timeout_s:g}s")
            err.__cause__ = ex
            self._fail(err)
        except AuthFailed as ex:
            self._fail(ex)
        except Exception as ex:
            err = AuthFailed(f"refresh failed: {type(ex).__name__}")
            err.__cause__ = ex
            self._fail(err)
        else:
            n = self._settle(token=self._tokens.get())
            logger.info("auth_refresh_succeeded", waiters=n)

    def _fail(self, err: AuthFailed) -> None:
        notify = self._notify_on_failure
        n = self._settle(error=err)
        self._tokens.clear()
        logger.warning(
            "auth_refresh_failed",
            error=str(err),
            status=err.status_code,
            waiters=n,
            notify=notify,
        )
        if notify:
            self._notifier.fire()

    def _settle(self, *, token: str | None = None, error: AuthFailed | None = None) -> int:
        waiters, self._waiters = self._waiters, deque()
        self._state = RefreshState.idle
        self._task = None
        settled = 0
        for waiter in waiters:
            # Cancelled callers leave a done future behind; skip it.
            if waiter.done():
                continue
            if error is not None:
                waiter.set_exception(error)
            else:
                waiter.set_result(str(token))
            settled += 1
        return settled

    async def aclose(self) -> None:
        task = self._task
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        # A task cancelled before its first step never reaches `_run`'s handler.
        if self._state is RefreshState.refreshing:
            self._settle(error=AuthFailed("refresh cancelled"))
