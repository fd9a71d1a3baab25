"""
Drift detection module.
"""
from .attribution import AttributionRanker
from .drift_detector import DriftDetector, classify_drift_type, detect_drift, drift_signals
from .normalizer import DistributionNormalizer

__all__ = [
    "DistributionNormalizer",
    "DriftDetector",
    "AttributionRanker",
    "classify_drift_type",
    "detect_drift",
    "drift_signals",
]
