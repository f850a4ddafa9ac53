"""
Deep merge of partial change requests into a state tree.

A change request mirrors the shape of the state but only carries the subtrees
that change. Two directives extend plain values:

- DELETE as a mapping value removes that key:

    deep_merge({"a": 1, "b": 2}, {"a": DELETE})  ->  {"b": 2}

- a mapping with an "operations" list in place of an array edits the array
  instead of replacing it:

    deep_merge({"b": ["a", "b"]}, {"b": {"operations": [{"op": "push", "value": "c"}]}})
        ->  {"b": ["a", "b", "c"]}

Supported array ops: push (append), unshift (prepend), splice (insert before
"index") and remove (delete at "index"). They are applied in list order, each
against the array as left by the previous one.

Arrays are never merged element by element: element identity cannot be
tracked reliably, so an array is either replaced wholesale or edited through
explicit operations. Mismatched shapes (a mapping change against a scalar, a
plain mapping against an array) fall back to replacing the value; merging
never raises on a malformed change.
"""

import copy
import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any, List

logger = logging.getLogger(__name__)

OPERATIONS_KEY = "operations"


class DeleteMarker:
    """Type of the DELETE sentinel. There is exactly one instance."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "DELETE"

    def __copy__(self) -> "DeleteMarker":
        return self

    def __deepcopy__(self, memo: Any) -> "DeleteMarker":
        return self

    def __reduce__(self) -> str:
        return "DELETE"


DELETE = DeleteMarker()


class ArrayOp(Enum):
    """Array edit operations accepted in an "operations" directive."""
    PUSH = "push"
    UNSHIFT = "unshift"
    SPLICE = "splice"
    REMOVE = "remove"


def deep_merge(subject: Any, changes: Any) -> Any:
    """
    Merge a change request into a state tree.

    Args:
        subject: Current state (left untouched)
        changes: Partial change request, may contain DELETE and array directives

    Returns:
        The merged tree, sharing no structure with either argument
    """
    return _merge(copy.deepcopy(subject), changes)


def _is_structured(value: Any) -> bool:
    return isinstance(value, (Mapping, list))


def _merge(subject: Any, changes: Any) -> Any:
    if isinstance(subject, list):
        if isinstance(changes, list):
            return _fresh(changes)
        if isinstance(changes, Mapping) and OPERATIONS_KEY in changes:
            return _apply_operations(subject, changes[OPERATIONS_KEY])
    elif isinstance(subject, dict) and isinstance(changes, Mapping):
        for key, value in changes.items():
            if value is DELETE:
                subject.pop(key, None)
            elif _is_structured(subject.get(key)) and _is_structured(value):
                subject[key] = _merge(subject[key], value)
            else:
                subject[key] = _fresh(value)
        return subject

    return _fresh(changes)


def _fresh(value: Any) -> Any:
    """Copy a value into the state, stripping DELETE markers (None inside arrays)."""
    if isinstance(value, Mapping):
        return _merge({}, value)
    if isinstance(value, list):
        return [_fresh(item) for item in value]
    if value is DELETE:
        return None
    return copy.deepcopy(value)


def _apply_operations(subject: List[Any], operations: Any) -> List[Any]:
    if not isinstance(operations, list):
        logger.warning(f"Ignoring array operations of type {type(operations).__name__}, expected a list")
        return subject

    for operation in operations:
        try:
            op = ArrayOp(operation.get("op"))
        except (AttributeError, ValueError):
            logger.warning(f"Skipping unknown array operation: {operation!r}")
            continue

        if op is ArrayOp.PUSH:
            subject.append(_fresh(operation.get("value")))
        elif op is ArrayOp.UNSHIFT:
            subject.insert(0, _fresh(operation.get("value")))
        else:
            index = operation.get("index")
            if not isinstance(index, int) or isinstance(index, bool):
                logger.warning(f"Skipping {op.value} without an integer index: {operation!r}")
                continue

            if op is ArrayOp.SPLICE:
                subject.insert(index, _fresh(operation.get("value")))
            elif -len(subject) <= index < len(subject):
                del subject[index]
            else:
                logger.debug(f"remove index {index} out of range for array of {len(subject)}")

    return subject


__all__ = ["DELETE", "DeleteMarker", "ArrayOp", "OPERATIONS_KEY", "deep_merge"]
