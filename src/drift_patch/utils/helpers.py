"""
Helper utilities for drift patch.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Generate a new record identifier."""
    return str(uuid.uuid4())


def format_timestamp(dt: Optional[datetime]) -> Optional[str]:
    """
    Format datetime to ISO string.

    Args:
        dt: Datetime object

    Returns:
        Formatted string, or None when dt is None
    """
    return dt.isoformat() if dt is not None else None


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO string produced by format_timestamp."""
    return datetime.fromisoformat(value) if value is not None else None


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """
    Safely divide two numbers, returning default if denominator is zero.

    Args:
        numerator: Numerator
        denominator: Denominator
        default: Default value if division by zero

    Returns:
        Result of division or default
    """
    if denominator == 0:
        return default
    return numerator / denominator


def clamp(value: float, lower: float = 0.0, upper: float = 1.0) -> float:
    """Clamp value into [lower, upper]."""
    return max(lower, min(upper, value))
