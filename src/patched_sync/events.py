"""
Event kinds emitted by the sync engine.

Each sync operation reports its lifecycle through three kinds:
- get:start / get:end / get:error: a fetch of the full remote object
- patch:start / patch:end / patch:error: a change() or patch() round trip

Subscription names follow a small shorthand:
- "get" and "patch" (no suffix) mean the ":end" kind
- "*" (or "*:*") means every start/end kind, but not the error kinds
"""

from enum import Enum
from typing import Tuple, Union


class EventKind(Enum):
    """Closed set of lifecycle events fired by PatchedSync."""
    GET_START = "get:start"
    GET_END = "get:end"
    GET_ERROR = "get:error"
    PATCH_START = "patch:start"
    PATCH_END = "patch:end"
    PATCH_ERROR = "patch:error"


WILDCARD = "*"

# Kinds a wildcard subscription expands to
WILDCARD_KINDS: Tuple[EventKind, ...] = (
    EventKind.GET_START,
    EventKind.GET_END,
    EventKind.PATCH_START,
    EventKind.PATCH_END,
)


def resolve_event_name(name: Union[str, EventKind]) -> Tuple[EventKind, ...]:
    """
    Resolve a subscription name to the event kinds it covers.

    Args:
        name: An EventKind, a full name ("patch:start"), a shorthand ("patch")
              or the wildcard ("*" / "*:*")

    Returns:
        Tuple of EventKind members the subscription should be registered under

    Raises:
        ValueError: If the name does not denote any known event kind
    """
    if isinstance(name, EventKind):
        return (name,)

    if name in (WILDCARD, "*:*"):
        return WILDCARD_KINDS

    if ":" not in name:
        name = f"{name}:end"

    try:
        return (EventKind(name),)
    except ValueError:
        available = ", ".join(kind.value for kind in EventKind)
        raise ValueError(f"Unknown event: '{name}'. Available: {available}, *") from None


def lookup_event_kind(name: Union[str, EventKind]) -> Union[EventKind, None]:
    """Return the EventKind for an exact event name, or None if unrecognized."""
    if isinstance(name, EventKind):
        return name
    try:
        return EventKind(name)
    except ValueError:
        return None


__all__ = ["EventKind", "WILDCARD", "WILDCARD_KINDS", "resolve_event_name", "lookup_event_kind"]
