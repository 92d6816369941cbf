"""
Event bus for Presentation notifications.

The engine never talks to a global dispatcher: an EventBus is injected
into the ProgressionController and every notification is pushed through
it. Listener failures are logged and do not interrupt the engine.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from loguru import logger


class EventType(str, Enum):
    """Notifications pushed to the Presentation collaborator."""

    VISIBILITY_CHANGED = "visibility-changed"
    NEW_FEATURE_FLAGGED = "new-feature-flagged"
    CATEGORY_UNLOCKED = "category-unlocked"
    RULE_TRIGGERED = "rule-triggered"
    TUTORIAL_REQUESTED = "tutorial-requested"
    CUSTOM_EVENT = "custom-event"
    AB_METRIC_CHANGED = "ab-metric-changed"
    JOURNEY_ANALYZED = "journey-analyzed"
    CONFIGURATION_LOADED = "configuration-loaded"
    AREA_RESET = "area-reset"
    SIMULATION_COMPLETE = "simulation-complete"
    DESTROYED = "destroyed"


@dataclass(frozen=True)
class Event:
    """A single notification."""

    type: EventType
    payload: dict[str, Any] = field(default_factory=dict)


Listener = Callable[[Event], None]


class EventBus:
    """
    Explicit observer registry.

    Usage:
        bus = EventBus()
        unsubscribe = bus.subscribe(EventType.VISIBILITY_CHANGED, handler)
        bus.emit(EventType.VISIBILITY_CHANGED, element_id="export", visible=True)
        unsubscribe()
    """

    def __init__(self):
        self._listeners: dict[EventType | None, list[Listener]] = defaultdict(list)

    def subscribe(self, event_type: EventType | None, listener: Listener) -> Callable[[], None]:
        """
        Register a listener.

        Args:
            event_type: Event to listen for, or None for every event
            listener: Callable receiving the Event

        Returns:
            A callable that removes the listener
        """
        self._listeners[event_type].append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(event_type, [])
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def emit(self, event_type: EventType, **payload: Any) -> Event:
        """Build an event and deliver it to specific then catch-all listeners."""
        event = Event(type=event_type, payload=payload)
        for listener in [*self._listeners.get(event_type, []), *self._listeners.get(None, [])]:
            try:
                listener(event)
            except Exception:
                logger.exception("Listener for {} failed", event_type.value)
        return event

    def clear(self) -> None:
        """Drop every listener."""
        self._listeners.clear()


class EventRecorder:
    """Catch-all listener that keeps every event (CLI summaries and tests)."""

    def __init__(self):
        self.events: list[Event] = []

    def __call__(self, event: Event) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> list[Event]:
        return [event for event in self.events if event.type == event_type]

    def clear(self) -> None:
        self.events.clear()
