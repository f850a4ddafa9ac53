"""
History Ledger for patched-sync
In-memory, append-only log of the patch documents produced by local changes.

Pattern: Append-only log, indexed reads
Lifetime: The owning engine instance (no persistence, no compaction)
"""

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

PatchDocument = List[Dict[str, Any]]


@dataclass
class HistoryRecord:
    """A stored patch document."""
    id: str
    patch: PatchDocument
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "patch": copy.deepcopy(self.patch),
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


class HistoryLedger:
    """
    Ordered log of applied patch documents, index 0 = oldest.

    Reads always hand out copies; the ledger itself can only grow.
    """

    def __init__(self) -> None:
        self._records: List[HistoryRecord] = []

    def append(self, patch: PatchDocument) -> str:
        """
        Append a patch document.

        Args:
            patch: The patch document, stored as a private copy

        Returns:
            record_id: UUID of the created history record
        """
        record = HistoryRecord(id=str(uuid.uuid4()), patch=copy.deepcopy(patch))
        self._records.append(record)
        return record.id

    def get(self, reverse_index: int = 0) -> Optional[PatchDocument]:
        """
        Get a patch document counting back from the newest entry.

        Args:
            reverse_index: 0 for the newest patch, 1 for the one before, ...

        Returns:
            Copy of the patch document, or None if the index is out of range
        """
        if reverse_index < 0 or reverse_index >= len(self._records):
            return None
        return copy.deepcopy(self._records[-1 - reverse_index].patch)

    def all(self) -> List[PatchDocument]:
        """Copies of every patch document, oldest first."""
        return [copy.deepcopy(record.patch) for record in self._records]

    def records(self) -> List[HistoryRecord]:
        """Copies of every history record (with id and timestamp), oldest first."""
        return [copy.deepcopy(record) for record in self._records]

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[PatchDocument]:
        return iter(self.all())
