"""
JSON Patch (RFC 6902) codec.

Thin layer over the jsonpatch distribution: diffing two snapshots into a
patch document, applying patch documents, and checking the shape of documents
received from a remote peer.
"""

import logging
from typing import Any, Dict, List, Optional

import jsonpatch

from .exceptions import PatchApplyError

logger = logging.getLogger(__name__)

PatchDocument = List[Dict[str, Any]]

PATCH_OPS = frozenset({"add", "remove", "replace", "move", "copy", "test"})


def diff(old: Any, new: Any) -> PatchDocument:
    """
    Compute the patch document turning ``old`` into ``new``.

    Returns:
        List of operation dicts (empty if the documents are equal)
    """
    return jsonpatch.make_patch(old, new).patch


def apply(document: Any, patch: Optional[PatchDocument], evaluate_tests: bool = True) -> Any:
    """
    Apply a patch document to a copy of ``document``.

    Args:
        document: Target document (left untouched)
        patch: Patch document; None is treated as empty
        evaluate_tests: If False, "test" operations are dropped instead of evaluated

    Returns:
        The patched document

    Raises:
        PatchApplyError: If an operation is invalid or addresses a missing path
    """
    operations = list(patch or [])
    if not evaluate_tests:
        kept = [op for op in operations if not (isinstance(op, dict) and op.get("op") == "test")]
        if len(kept) != len(operations):
            logger.debug(f"Dropped {len(operations) - len(kept)} test operations from patch")
        operations = kept

    try:
        return jsonpatch.apply_patch(document, operations, in_place=False)
    except (jsonpatch.JsonPatchException, jsonpatch.JsonPointerException,
            KeyError, IndexError, TypeError, AttributeError) as e:
        raise PatchApplyError(f"Failed to apply patch: {e}") from e


def validate_patch(document: Any) -> PatchDocument:
    """
    Check that a decoded payload is a patch document.

    Returns:
        The document itself

    Raises:
        ValueError: If it is not a list of operation objects with a known op and a string path
    """
    if not isinstance(document, list):
        raise ValueError(f"Patch document must be a JSON array, got {type(document).__name__}")

    for position, operation in enumerate(document):
        if not isinstance(operation, dict):
            raise ValueError(f"Operation {position} is not an object")
        if operation.get("op") not in PATCH_OPS:
            raise ValueError(f"Operation {position} has unknown op {operation.get('op')!r}")
        if not isinstance(operation.get("path"), str):
            raise ValueError(f"Operation {position} is missing a string path")

    return document


__all__ = ["PatchDocument", "PATCH_OPS", "diff", "apply", "validate_patch"]
