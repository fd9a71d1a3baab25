"""
In-process patch store.
"""
import threading
from typing import Any, Dict, List, Optional

import structlog

from ..models import PatchSnapshot
from .interface import PatchStore, Record, record_from_dict

logger = structlog.get_logger(__name__)


class InMemoryPatchStore(PatchStore):
    """
    Thread-safe store keeping records in their serialized dict form.

    Records are rebuilt on load, so callers never share instances with the
    store.
    """

    def __init__(self):
        self._records: Dict[str, Dict[str, Any]] = {}
        self._snapshot_order: Dict[str, List[str]] = {}
        self._lock = threading.Lock()

    def save(self, record: Record) -> None:
        data = record.to_dict()
        with self._lock:
            self._records[record.id] = data
            if isinstance(record, PatchSnapshot):
                order = self._snapshot_order.setdefault(record.patch_id, [])
                if record.id in order:
                    order.remove(record.id)
                order.append(record.id)
        logger.debug("record_saved", record_id=record.id, record_type=data["record_type"])

    def load(self, record_id: str) -> Optional[Record]:
        with self._lock:
            data = self._records.get(record_id)
        return record_from_dict(data) if data is not None else None

    def latest_snapshot(self, patch_id: str) -> Optional[PatchSnapshot]:
        with self._lock:
            order = self._snapshot_order.get(patch_id, [])
            data = self._records.get(order[-1]) if order else None
        return PatchSnapshot.from_dict(data) if data is not None else None

    def delete(self, record_id: str) -> bool:
        with self._lock:
            data = self._records.pop(record_id, None)
            if data is None:
                return False
            if data["record_type"] == "patch_snapshot":
                order = self._snapshot_order.get(data["patch_id"], [])
                if record_id in order:
                    order.remove(record_id)
        logger.debug("record_deleted", record_id=record_id)
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
