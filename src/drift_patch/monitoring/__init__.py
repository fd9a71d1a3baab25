"""
Monitoring module for drift patch.
"""
from .metrics import (
    record_detection,
    record_model_busy,
    record_rollback,
    record_transition,
    record_validation,
    setup_prometheus_metrics,
)

__all__ = [
    "setup_prometheus_metrics",
    "record_detection",
    "record_transition",
    "record_validation",
    "record_rollback",
    "record_model_busy",
]
