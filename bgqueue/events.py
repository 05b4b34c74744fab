"""
In-process event bus for job lifecycle notifications.
"""

import logging
from collections import defaultdict
from typing import Callable

from bgqueue.types.events import JobEvent

logger = logging.getLogger(__name__)

EventCallback = Callable[[JobEvent], None]


class EventBus:
    """
    Synchronous publish/subscribe for job events.

    Subscribers are called in registration order on the emitting thread.
    A subscriber that raises is logged and skipped so that it can never fail
    the job operation that emitted the event.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[EventCallback]] = defaultdict(list)

    def subscribe(self, event_type: str, callback: EventCallback) -> None:
        """
        Subscribe a callback to an event type.

        Args:
            event_type: The event type, e.g. ``"job_added"``.
            callback: Called with the JobEvent.
        """
        self._subscribers[event_type].append(callback)

    def unsubscribe(self, event_type: str, callback: EventCallback) -> None:
        """Remove a callback. Unknown callbacks are ignored."""
        callbacks = self._subscribers.get(event_type, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def emit(self, event: JobEvent) -> None:
        """
        Deliver an event to every subscriber of its type.

        Args:
            event: The job event to deliver.
        """
        for callback in list(self._subscribers.get(event.event_type, [])):
            try:
                callback(event)
            except Exception as e:
                logger.warning(
                    f"Event subscriber failed: {e}",
                    extra={"event_type": event.event_type, "job_id": event.job_id}
                )

    def subscriber_count(self, event_type: str | None = None) -> int:
        """
        Get the number of subscribers.

        Args:
            event_type: Optional event type filter.
        """
        if event_type is not None:
            return len(self._subscribers.get(event_type, []))
        return sum(len(callbacks) for callbacks in self._subscribers.values())
