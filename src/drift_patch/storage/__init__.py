"""
Storage module for drift patch.
"""
from .database import SqlPatchStore
from .interface import PatchStore, record_from_dict
from .memory import InMemoryPatchStore

__all__ = [
    "PatchStore",
    "InMemoryPatchStore",
    "SqlPatchStore",
    "record_from_dict",
]
