"""
Structured result types for document store writes and error classification.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional


class StoreErrorKind(str, Enum):
    """How a store error is reported to callers."""
    NOT_FOUND = "not_found"   # empty result, not an error
    CONFLICT = "conflict"     # uniqueness violation, reported as "no effect"
    FAULT = "fault"           # transport/storage failure, raised


@dataclass
class WriteAcknowledgement:
    """
    Outcome of an insert, update or remove.

    A write that hit a uniqueness conflict comes back as ``conflict=True``
    with every count at zero.
    """
    inserted_ids: List[Any] = field(default_factory=list)
    matched_count: int = 0
    modified_count: int = 0
    deleted_count: int = 0
    upserted_id: Optional[Any] = None
    conflict: bool = False

    @property
    def affected(self) -> bool:
        """True when the write changed anything in the store."""
        return bool(
            self.inserted_ids
            or self.modified_count
            or self.deleted_count
            or self.upserted_id is not None
        )

    @classmethod
    def conflicted(cls) -> "WriteAcknowledgement":
        """Acknowledgement for a write rejected by a unique index."""
        return cls(conflict=True)
