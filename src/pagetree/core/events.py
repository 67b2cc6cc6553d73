"""Event hooks fired around structural node changes.

Listeners receive the event name and a payload with the action, the
affected nodes and a description of the change.
"""

import logging
from typing import Any, Callable, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

# Fired before a node action is written
EVENT_PRE_ACTION = "cms.node.action.pre"

# Fired after a node action is written
EVENT_POST_ACTION = "cms.node.action.post"

EventListener = Callable[[str, dict[str, Any]], None]


@runtime_checkable
class EventManager(Protocol):
    """Protocol for an event sink of the node model."""

    def trigger_event(self, name: str, args: dict[str, Any] | None = None) -> None:
        """Notify the listeners of an event."""
        ...


class ListenerEventManager:
    """Event manager dispatching to registered listeners by event name."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[EventListener]] = {}

    def add_listener(self, name: str, listener: EventListener) -> None:
        """Register a listener for an event."""
        self._listeners.setdefault(name, []).append(listener)

    def remove_listener(self, name: str, listener: EventListener) -> None:
        """Unregister a listener. Unknown listeners are ignored."""
        listeners = self._listeners.get(name, [])
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, name: str) -> int:
        return len(self._listeners.get(name, []))

    def trigger_event(self, name: str, args: dict[str, Any] | None = None) -> None:
        args = args or {}
        for listener in list(self._listeners.get(name, [])):
            try:
                listener(name, args)
            except Exception:
                logger.exception("Error in listener for event %s", name)
