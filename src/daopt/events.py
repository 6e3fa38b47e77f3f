"""The optimization event classes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from daopt.enums import EventType

if TYPE_CHECKING:
    from collections.abc import Callable


@dataclass(slots=True)
class Event:
    """Stores data related to an optimization event.

    While running an optimization, callbacks can be connected to react to
    events. These callbacks accept a single `Event` object. The data contained
    in the object depends on the nature of the event, refer to the
    documentation of the [`EventType`][daopt.enums.EventType] enumeration for
    details.

    Attributes:
        event_type: The type of the event.
        data:       A dictionary containing event-specific data.
    """

    event_type: EventType
    data: dict[str, Any] = field(default_factory=dict)


class EventBroker:
    """A class for handling optimization events."""

    def __init__(self) -> None:
        """Initialize the optimization event broker."""
        self._subscribers: dict[EventType, list[Callable[[Event], None]]] = {
            event: [] for event in EventType
        }

    def add_observer(
        self, event_type: EventType, callback: Callable[[Event], None]
    ) -> None:
        """Add an observer function.

        Args:
            event_type: The type of events to react to.
            callback:   The function to call if the event is received.
        """
        self._subscribers[event_type].append(callback)

    def emit(self, event_type: EventType, /, **kwargs: Any) -> None:  # noqa: ANN401
        """Emit an optimization event.

        The keyword arguments are stored in the `data` field of the
        [`Event`][daopt.events.Event] object that is passed to all callbacks
        observing the given event type.

        Args:
            event_type: The type of event to emit.
            kwargs:     Event-specific data.
        """
        event = Event(event_type=event_type, data=kwargs)
        for callback in self._subscribers[event_type]:
            callback(event)
