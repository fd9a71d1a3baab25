"""
Domain records for drift detection and patching.
"""
from .drift import (
    AttributionEntry,
    DistributionShift,
    DriftResult,
    DriftSeverity,
    DriftType,
    FeatureDrift,
    FeatureSample,
    FeatureStats,
    SampleRole,
    compute_feature_stats,
)
from .patch import (
    FeatureClipping,
    FeatureReweighting,
    ModelUpdate,
    NormalizationUpdate,
    OutlierRemoval,
    Patch,
    PatchConfiguration,
    PatchSnapshot,
    PatchStatus,
    PatchType,
    ThresholdTuning,
    ValidationResult,
    configuration_from_dict,
    describe_configuration,
)

__all__ = [
    "AttributionEntry",
    "DistributionShift",
    "DriftResult",
    "DriftSeverity",
    "DriftType",
    "FeatureDrift",
    "FeatureSample",
    "FeatureStats",
    "SampleRole",
    "compute_feature_stats",
    "FeatureClipping",
    "FeatureReweighting",
    "ModelUpdate",
    "NormalizationUpdate",
    "OutlierRemoval",
    "Patch",
    "PatchConfiguration",
    "PatchSnapshot",
    "PatchStatus",
    "PatchType",
    "ThresholdTuning",
    "ValidationResult",
    "configuration_from_dict",
    "describe_configuration",
]
