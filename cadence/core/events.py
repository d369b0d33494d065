"""
Notification channel shared by the tracker and the difficulty adapter.

Observers (UI, logging) subscribe to named events. Delivery is synchronous
and best-effort: a subscriber that raises is logged and skipped, the
remaining subscribers and the emitter carry on.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable

from loguru import logger

SESSION_START = "session:start"
SESSION_END = "session:end"
ACTIVITY = "activity"
EVENT = "event"

# Subscribe with this name to receive every notification.
ALL = "*"

Listener = Callable[[str, dict[str, Any]], None]


class EventEmitter:
    """Synchronous subscribe/unsubscribe/emit hub."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def subscribe(self, event: str, listener: Listener) -> Callable[[], None]:
        """
        Register a listener for an event name.

        Returns:
            A zero-argument callable that unsubscribes the listener.
        """
        self._listeners[event].append(listener)
        return lambda: self.unsubscribe(event, listener)

    def unsubscribe(self, event: str, listener: Listener) -> bool:
        listeners = self._listeners.get(event)
        if not listeners or listener not in listeners:
            return False
        listeners.remove(listener)
        return True

    def emit(self, event: str, payload: dict[str, Any] | None = None) -> int:
        """
        Deliver a notification to its subscribers and to wildcard subscribers.

        Returns:
            Number of listeners that handled the notification without raising.
        """
        data = payload or {}
        delivered = 0
        targets = list(self._listeners.get(event, ())) + list(self._listeners.get(ALL, ()))
        for listener in targets:
            try:
                listener(event, data)
                delivered += 1
            except Exception as exc:
                logger.warning(f"Listener for '{event}' failed: {exc}")
        return delivered

    def track(self, category: str, action: str, data: dict[str, Any] | None = None) -> int:
        """Emit a generic ``activity`` notification."""
        return self.emit(ACTIVITY, {"category": category, "action": action, **(data or {})})

    def clear(self) -> None:
        self._listeners.clear()

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))
