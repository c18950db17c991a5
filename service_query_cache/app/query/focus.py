"""
Window focus notifications.
"""

from typing import Callable

from shared.logging import get_logger

from .models import ListenerSet


class FocusEventBus:
    """Fans a host "window focused" signal out to interested subscriptions."""

    def __init__(self):
        self.logger = get_logger("query_cache.focus")
        self._listeners = ListenerSet(name="focus")

    def add_listener(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unregisters it."""
        return self._listeners.add(lambda _event: listener())

    def notify_focus(self) -> int:
        """Deliver a focus event; returns how many listeners were notified."""
        count = len(self._listeners)
        self.logger.debug("Window focus event", listeners=count)
        self._listeners.notify(None)
        return count

    def __len__(self) -> int:
        return len(self._listeners)
