"""Subscription support for state holders read by many UI components."""
from typing import Callable

from cartsync.logging import get_logger

logger = get_logger(__name__)

Listener = Callable[[object], None]


class Observable:
    """
    Minimal observer base.

    subscribe() returns an unsubscribe callable. Listeners receive the
    observable itself and read whatever state they need from it. A failing
    listener is logged and does not stop the others.
    """

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.error("Listener %r failed", listener, exc_info=True)
