"""
Custom exceptions for the drift patch component.
"""
from typing import Any, Dict, Optional


class DriftPatchException(Exception):
    """Base exception for drift patch."""

    def __init__(
        self,
        message: str,
        error_code: str = "DP000",
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize exception.

        Args:
            message: Error message
            error_code: Error code
            details: Additional error details
        """
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class InsufficientDataError(DriftPatchException):
    """Raised when reference/current matrices are empty or mismatched."""

    def __init__(
        self,
        message: str = "Insufficient data for drift detection",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="DP001",
            details=details
        )


class InvalidConfigurationError(DriftPatchException):
    """Raised when a patch configuration is malformed."""

    def __init__(
        self,
        message: str = "Invalid patch configuration",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="DP002",
            details=details
        )


class ModelBusyError(DriftPatchException):
    """Raised when another operation holds the model lock. Callers may retry."""

    def __init__(
        self,
        message: str = "Model is busy with another operation",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="DP003",
            details=details
        )


class InvalidTransitionError(DriftPatchException):
    """Raised on a patch lifecycle transition that is not allowed."""

    def __init__(
        self,
        message: str = "Invalid patch status transition",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="DP004",
            details=details
        )


class SnapshotCorruptionError(DriftPatchException):
    """Raised when a rollback snapshot is missing or cannot be decoded."""

    def __init__(
        self,
        message: str = "Patch snapshot is missing or corrupt",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="DP005",
            details=details
        )


class PatchApplicationError(DriftPatchException):
    """Raised when applying a configuration to the live state fails."""

    def __init__(
        self,
        message: str = "Failed to apply patch",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="DP006",
            details=details
        )


class OperationCancelledError(DriftPatchException):
    """Raised when a cancellation token is triggered mid-computation."""

    def __init__(
        self,
        message: str = "Operation cancelled",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="DP007",
            details=details
        )


class StorageException(DriftPatchException):
    """Exception raised for storage errors."""

    def __init__(
        self,
        message: str = "Storage operation failed",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="DP008",
            details=details
        )


class MetricsComputationException(DriftPatchException):
    """Exception raised when drift metrics computation fails."""

    def __init__(
        self,
        message: str = "Failed to compute drift metrics",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="DP009",
            details=details
        )
