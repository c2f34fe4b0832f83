"""Synchronous publish/subscribe used for scheduler notifications.

Subscribers run in registration order, after the publishing component has finished
mutating its own state.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Subscriber = Callable[..., Any]


class EventHub:
    """Named subscriber lists."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Subscriber]] = {}

    def subscribe(self, event: str, callback: Subscriber) -> Callable[[], None]:
        """
        Register ``callback`` for ``event``.

        Returns:
            A function that removes the subscription again.
        """
        self._subscribers.setdefault(event, []).append(callback)

        def unsubscribe() -> None:
            self.unsubscribe(event, callback)

        return unsubscribe

    def unsubscribe(self, event: str, callback: Subscriber) -> bool:
        callbacks = self._subscribers.get(event, [])
        if callback in callbacks:
            callbacks.remove(callback)
            return True
        return False

    def emit(self, event: str, *args: Any) -> None:
        # A failing subscriber must not starve the ones after it.
        for callback in list(self._subscribers.get(event, [])):
            try:
                callback(*args)
            except Exception:
                logger.exception("Subscriber %r failed handling %s", callback, event)

    def subscriber_count(self, event: str) -> int:
        return len(self._subscribers.get(event, []))
