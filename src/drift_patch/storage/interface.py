"""
Storage interface the patch lifecycle depends on.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Union

from ..models import DriftResult, Patch, PatchSnapshot
from ..utils import StorageException

Record = Union[DriftResult, Patch, PatchSnapshot]

RECORD_TYPES = {
    "drift_result": DriftResult,
    "patch": Patch,
    "patch_snapshot": PatchSnapshot,
}


def record_from_dict(data: Dict[str, Any]) -> Record:
    """Rebuild a stored record from its dict form."""
    record_type = data.get("record_type")
    if record_type not in RECORD_TYPES:
        raise StorageException(
            f"Unknown record type: {record_type}",
            details={"record_type": record_type}
        )
    return RECORD_TYPES[record_type].from_dict(data)


class PatchStore(ABC):
    """
    Persistence for drift results, patches and snapshots.

    `save` must be durable when it returns: the lifecycle engine makes a
    state change visible only after the corresponding save.
    """

    @abstractmethod
    def save(self, record: Record) -> None:
        """Insert or replace a record by id."""

    @abstractmethod
    def load(self, record_id: str) -> Optional[Record]:
        """Record with the given id, or None."""

    @abstractmethod
    def latest_snapshot(self, patch_id: str) -> Optional[PatchSnapshot]:
        """Most recently saved snapshot of a patch, or None."""

    @abstractmethod
    def delete(self, record_id: str) -> bool:
        """Remove a record. Returns False when it did not exist."""
