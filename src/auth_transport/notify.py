from __future__ import annotations

from collections.abc import Callable

from auth_transport.utils.log import logger

SESSION_EXPIRED = "auth:session-expired"

Subscriber = Callable[[], None]


class SessionExpiryNotifier:
    """
    Observer list for the `auth:session-expired` signal (no payload).

    The UI layer subscribes and redirects to login. The transport guarantees at
    most one `fire()` per terminal refresh failure; this class only fans out.
    """

    event = SESSION_EXPIRED

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def fire(self) -> None:
        logger.warning("session_expired", event_name=self.event, subscribers=len(self._subscribers))
        # Snapshot so a subscriber may unsubscribe while being notified.
        for cb in list(self._subscribers):
            try:
                cb()
            except Exception:
                logger.exception(
                    "session_expiry_subscriber_failed",
                    subscriber=getattr(cb, "__qualname__", repr(cb)),
                )
