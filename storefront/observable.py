"""Listener registry shared by the stores and the auth bridge."""

from typing import Any, Callable, List

from storefront.logging import get_logger

logger = get_logger(__name__)

Listener = Callable[..., Any]


class Observable:
    """
    Minimal subscribe/notify mechanism.

    Listeners run synchronously, in subscription order, after each committed
    change. A failing listener is logged and skipped so one subscriber can
    never break the store or the other subscribers.
    """

    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, *args: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(*args)
            except Exception as e:
                logger.warning(
                    f"Listener {getattr(listener, '__qualname__', listener)!r} failed: {e}",
                    exc_info=True,
                )
