"""
Utilities module for drift patch.
"""
from .cancellation import CancellationToken, check_cancelled
from .exceptions import *

__all__ = [
    "DriftPatchException",
    "InsufficientDataError",
    "InvalidConfigurationError",
    "ModelBusyError",
    "InvalidTransitionError",
    "SnapshotCorruptionError",
    "PatchApplicationError",
    "OperationCancelledError",
    "StorageException",
    "MetricsComputationException",
    "CancellationToken",
    "check_cancelled",
]
