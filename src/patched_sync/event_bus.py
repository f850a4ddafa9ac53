"""
EventBus for in-process pub/sub of sync lifecycle events.

Delivery is synchronous and in subscription order. Every callback receives its
own deep copy of the event data, so a subscriber can never reach into the
engine's canonical state.

Usage:
    bus = EventBus()

    # Subscribe to a specific kind (shorthand "patch" means "patch:end")
    bus.subscribe('patch', lambda state: print(state))

    # Subscribe to every start/end kind
    sub_id = bus.subscribe('*', lambda data: log_event(data))

    # Publish
    bus.publish(EventKind.PATCH_END, {"a": 1})

    bus.unsubscribe(sub_id)
"""

import copy
import logging
import uuid
from threading import Lock
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .events import EventKind, lookup_event_kind, resolve_event_name

logger = logging.getLogger(__name__)

Callback = Callable[[Any], None]


class EventBus:
    """
    Synchronous event bus keyed by EventKind.

    Supports:
    - subscribe(name, callback): register a callback, returns a subscription id
    - unsubscribe(subscription_id): drop every registration made under that id
    - publish(kind, data): invoke subscribers in order with a clone of data

    A callback that raises is logged and skipped; the remaining callbacks still
    run and the exception never reaches the publisher.
    """

    def __init__(self):
        """Initialize one empty, ordered callback list per event kind."""
        self._subscribers: Dict[EventKind, List[Tuple[str, Callback]]] = {
            kind: [] for kind in EventKind
        }
        self._lock = Lock()

    def subscribe(self, name: Union[str, EventKind], callback: Callback) -> str:
        """
        Subscribe to one or more event kinds.

        Args:
            name: Event name, shorthand or wildcard (see patched_sync.events)
            callback: Function called with a clone of the event data

        Returns:
            Subscription id usable with unsubscribe()

        Raises:
            ValueError: If the name is not a known event
        """
        kinds = resolve_event_name(name)
        subscription_id = uuid.uuid4().hex

        with self._lock:
            for kind in kinds:
                self._subscribers[kind].append((subscription_id, callback))

        logger.debug(
            f"Subscribed {getattr(callback, '__name__', 'callback')} to "
            f"{', '.join(kind.value for kind in kinds)} ({subscription_id})"
        )
        return subscription_id

    def unsubscribe(self, subscription_id: str) -> bool:
        """
        Remove every registration made under a subscription id.

        Returns:
            True if at least one registration was removed, False otherwise
        """
        removed = False
        with self._lock:
            for kind, entries in self._subscribers.items():
                kept = [entry for entry in entries if entry[0] != subscription_id]
                if len(kept) != len(entries):
                    self._subscribers[kind] = kept
                    removed = True

        if removed:
            logger.debug(f"Unsubscribed {subscription_id}")
        return removed

    def publish(self, kind: Union[str, EventKind], data: Any = None) -> int:
        """
        Publish an event to every subscriber of its kind.

        Args:
            kind: EventKind or exact event name; unknown names are ignored
            data: Event payload, deep-copied for each subscriber

        Returns:
            Number of callbacks invoked
        """
        event_kind = lookup_event_kind(kind)
        if event_kind is None:
            logger.debug(f"Ignoring unknown event: {kind}")
            return 0

        # Copy the list so callbacks may (un)subscribe while we iterate
        with self._lock:
            subscribers = list(self._subscribers[event_kind])

        for subscription_id, callback in subscribers:
            try:
                callback(copy.deepcopy(data))
            except Exception as e:
                logger.error(
                    f"Error in subscriber callback {subscription_id} for {event_kind.value}: {e}",
                    exc_info=True
                )

        logger.debug(f"Published {event_kind.value} to {len(subscribers)} subscribers")
        return len(subscribers)

    def clear(self) -> None:
        """Clear all subscriptions."""
        with self._lock:
            for entries in self._subscribers.values():
                entries.clear()
            logger.debug("Cleared all subscriptions")

    def subscriber_count(self, kind: Optional[Union[str, EventKind]] = None) -> int:
        """
        Get count of registrations.

        Args:
            kind: Optional exact event name or kind. If None, returns total.
        """
        with self._lock:
            if kind is None:
                return sum(len(entries) for entries in self._subscribers.values())
            event_kind = lookup_event_kind(kind)
            if event_kind is None:
                return 0
            return len(self._subscribers[event_kind])


__all__ = ['EventBus']
