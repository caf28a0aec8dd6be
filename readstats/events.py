from __future__ import annotations

from typing import Any, Callable

SESSION_COMPLETED = "session:completed"
BOOK_UPDATED = "book:updated"
STATS_REFRESH = "stats:refresh"

EVENTS = (SESSION_COMPLETED, BOOK_UPDATED, STATS_REFRESH)

Handler = Callable[[Any], None]


class EventBus:
    """In-process publish/subscribe with synchronous delivery."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = {}

    def on(self, event: str, handler: Handler) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def off(self, event: str, handler: Handler) -> None:
        handlers = self._handlers.get(event)
        if not handlers:
            return
        self._handlers[event] = [item for item in handlers if item != handler]

    def once(self, event: str, handler: Handler) -> None:
        def _once(payload: Any) -> None:
            self.off(event, _once)
            handler(payload)

        self.on(event, _once)

    def emit(self, event: str, payload: Any = None) -> None:
        # Copy so handlers may subscribe or unsubscribe while being notified.
        for handler in list(self._handlers.get(event, ())):
            handler(payload)

    def subscriber_count(self, event: str) -> int:
        return len(self._handlers.get(event, ()))
