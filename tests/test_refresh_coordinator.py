from __future__ import annotations

import asyncio

import pytest

from auth_transport.errors import AuthFailed
from auth_transport.notify import SessionExpiryNotifier
from auth_transport.tokens import TokenStore
from auth_transport.transport import RefreshCoordinator, RefreshState
from tests._helpers.backend import wait_until


class FakeRefresher:
    def __init__(self, *, token: str | None = "T2", error: Exception | None = None) -> None:
        self.token = token
        self.error = error
        self.gate: asyncio.Event | None = None
        self.calls = 0

    async def refresh(self) -> str:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        assert self.token is not None
        return self.token


def _coordinator(refresher: FakeRefresher, *, token: str | None = None, timeout_s: float = 5.0):
    tokens = TokenStore(token)
    notifier = SessionExpiryNotifier()
    fired: list[int] = []
    notifier.subscribe(lambda: fired.append(1))
    coord = RefreshCoordinator(
        refresher=refresher, tokens=tokens, notifier=notifier, timeout_s=timeout_s
    )
    return coord, tokens, fired


def test_waiters_settle_in_arrival_order() -> None:
    refresher = FakeRefresher()
    refresher.gate = asyncio.Event()
    coord, tokens, fired = _coordinator(refresher, token="T1")
    order: list[int] = []

    async def waiter(i: int) -> str:
        tok = await coord.acquire(stale_token="T1")
        order.append(i)
        return tok

    async def main():
        tasks = [asyncio.create_task(waiter(i)) for i in range(4)]
        await wait_until(lambda: coord.pending == 4 and refresher.calls == 1)
        assert coord.state is RefreshState.refreshing
        refresher.gate.set()
        return await asyncio.gather(*tasks)

    results = asyncio.run(main())
    assert results == ["T2"] * 4
    assert order == [0, 1, 2, 3]
    assert refresher.calls == 1
    assert coord.state is RefreshState.idle
    assert coord.pending == 0
    assert tokens.get() == "T2"
    assert fired == []


def test_refresh_timeout_fails_waiters_and_expires_session() -> None:
    refresher = FakeRefresher()
    refresher.gate = asyncio.Event()  # never set
    coord, tokens, fired = _coordinator(refresher, token="T1", timeout_s=0.05)

    async def main():
        with pytest.raises(AuthFailed) as info:
            await coord.acquire(stale_token="T1")
        return info.value

    err = asyncio.run(main())
    assert "timed out" in str(err)
    assert isinstance(err.__cause__, asyncio.TimeoutError)
    assert tokens.get() is None
    assert fired == [1]
    assert coord.state is RefreshState.idle


def test_cancelled_waiter_does_not_disturb_the_others() -> None:
    refresher = FakeRefresher()
    refresher.gate = asyncio.Event()
    coord, _, fired = _coordinator(refresher, token="T1")

    async def main():
        tasks = [asyncio.create_task(coord.acquire(stale_token="T1")) for _ in range(3)]
        await wait_until(lambda: coord.pending == 3 and refresher.calls == 1)
        tasks[1].cancel()
        await asyncio.sleep(0)
        refresher.gate.set()
        return await asyncio.gather(*tasks, return_exceptions=True)

    results = asyncio.run(main())
    assert results[0] == "T2"
    assert isinstance(results[1], asyncio.CancelledError)
    assert results[2] == "T2"
    assert refresher.calls == 1
    assert fired == []


def test_cancelling_the_caller_that_started_refresh_keeps_it_running() -> None:
    refresher = FakeRefresher()
    refresher.gate = asyncio.Event()
    coord, tokens, _ = _coordinator(refresher, token="T1")

    async def main():
        first = asyncio.create_task(coord.acquire(stale_token="T1"))
        await wait_until(lambda: refresher.calls == 1)
        second = asyncio.create_task(coord.acquire(stale_token="T1"))
        await wait_until(lambda: coord.pending == 2)
        first.cancel()
        await asyncio.sleep(0)
        refresher.gate.set()
        return await second, first.cancelled()

    tok, first_cancelled = asyncio.run(main())
    assert tok == "T2"
    assert first_cancelled is True
    assert tokens.get() == "T2"
    assert refresher.calls == 1


def test_rotated_token_is_returned_without_refresh() -> None:
    refresher = FakeRefresher()
    coord, _, _ = _coordinator(refresher, token="T2")

    tok = asyncio.run(coord.acquire(stale_token="T1"))
    assert tok == "T2"
    assert refresher.calls == 0


def test_stale_token_still_current_triggers_refresh() -> None:
    refresher = FakeRefresher(token="T3")
    coord, tokens, _ = _coordinator(refresher, token="T2")

    tok = asyncio.run(coord.acquire(stale_token="T2"))
    assert tok == "T3"
    assert tokens.get() == "T3"
    assert refresher.calls == 1


def test_unexpected_refresher_error_becomes_auth_failed() -> None:
    boom = RuntimeError("boom")
    refresher = FakeRefresher(error=boom)
    coord, tokens, fired = _coordinator(refresher, token="T1")

    async def main():
        with pytest.raises(AuthFailed) as info:
            await coord.acquire(stale_token="T1")
        return info.value

    err = asyncio.run(main())
    assert err.__cause__ is boom
    assert "RuntimeError" in str(err)
    assert tokens.get() is None
    assert fired == [1]


def test_auth_failed_from_refresher_is_passed_through() -> None:
    rejected = AuthFailed("refresh rejected with status 401")
    refresher = FakeRefresher(error=rejected)
    coord, _, fired = _coordinator(refresher)

    async def main():
        with pytest.raises(AuthFailed) as info:
            await coord.acquire()
        return info.value

    assert asyncio.run(main()) is rejected
    assert fired == [1]


def test_new_refresh_can_start_after_a_failed_one() -> None:
    refresher = FakeRefresher(error=AuthFailed("rejected"))
    coord, tokens, fired = _coordinator(refresher, token="T1")

    async def main():
        with pytest.raises(AuthFailed):
            await coord.acquire(stale_token="T1")
        refresher.error = None
        return await coord.acquire()

    assert asyncio.run(main()) == "T2"
    assert refresher.calls == 2
    assert tokens.get() == "T2"
    assert fired == [1]


def test_aclose_releases_waiters_without_expiring_session() -> None:
    refresher = FakeRefresher()
    refresher.gate = asyncio.Event()
    coord, tokens, fired = _coordinator(refresher, token="T1")

    async def main():
        task = asyncio.create_task(coord.acquire(stale_token="T1"))
        await wait_until(lambda: coord.pending == 1 and refresher.calls == 1)
        await coord.aclose()
        with pytest.raises(AuthFailed) as info:
            await task
        return info.value

    err = asyncio.run(main())
    assert "cancelled" in str(err)
    assert coord.state is RefreshState.idle
    assert coord.pending == 0
    assert tokens.get() == "T1"
    assert fired == []


def test_aclose_is_a_noop_when_idle() -> None:
    coord, _, fired = _coordinator(FakeRefresher())
    asyncio.run(coord.aclose())
    assert coord.state is RefreshState.idle
    assert fired == []


def test_empty_token_from_refresher_fails_every_waiter() -> None:
    refresher = FakeRefresher(token="")
    refresher.gate = asyncio.Event()
    coord, tokens, fired = _coordinator(refresher, token="T1")

    async def main():
        tasks = [asyncio.create_task(coord.acquire(stale_token="T1")) for _ in range(2)]
        await wait_until(lambda: coord.pending == 2 and refresher.calls == 1)
        refresher.gate.set()
        results = await asyncio.wait_for(asyncio.gather(*tasks, return_exceptions=True), 1)
        # a later caller is not stuck behind a dead refresh
        refresher.token = "T3"
        return results, await asyncio.wait_for(coord.acquire(), 1)

    results, later = asyncio.run(main())
    assert all(isinstance(r, AuthFailed) for r in results)
    assert isinstance(results[0].__cause__, ValueError)
    assert later == "T3"
    assert refresher.calls == 2
    assert tokens.get() == "T3"
    assert fired == [1]
    assert coord.state is RefreshState.idle


def test_silent_acquire_failure_does_not_notify() -> None:
    refresher = FakeRefresher(error=AuthFailed("no refresh cookie"))
    coord, tokens, fired = _coordinator(refresher)

    async def main():
        with pytest.raises(AuthFailed):
            await coord.acquire(notify=False)

    asyncio.run(main())
    assert refresher.calls == 1
    assert tokens.get() is None
    assert fired == []


def test_request_joining_a_silent_refresh_still_gets_notified() -> None:
    refresher = FakeRefresher(error=AuthFailed("no refresh cookie"))
    refresher.gate = asyncio.Event()
    coord, _, fired = _coordinator(refresher)

    async def main():
        silent = asyncio.create_task(coord.acquire(notify=False))
        await wait_until(lambda: refresher.calls == 1)
        loud = asyncio.create_task(coord.acquire())
        await wait_until(lambda: coord.pending == 2)
        refresher.gate.set()
        return await asyncio.gather(silent, loud, return_exceptions=True)

    results = asyncio.run(main())
    assert all(isinstance(r, AuthFailed) for r in results)
    assert results[0] is results[1]
    assert refresher.calls == 1
    assert fired == [1]


def test_silent_flag_does_not_leak_into_the_next_refresh() -> None:
    refresher = FakeRefresher(error=AuthFailed("rejected"))
    coord, _, fired = _coordinator(refresher)

    async def main():
        with pytest.raises(AuthFailed):
            await coord.acquire(notify=False)
        with pytest.raises(AuthFailed):
            await coord.acquire()

    asyncio.run(main())
    assert refresher.calls == 2
    assert fired == [1]


def test_request_sent_without_token_uses_token_stored_meanwhile() -> None:
    refresher = FakeRefresher()
    coord, _, _ = _coordinator(refresher, token="T2")

    assert asyncio.run(coord.acquire(stale_token=None)) == "T2"
    assert refresher.calls == 0
