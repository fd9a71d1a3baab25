"""
Patch records: configurations, validation results, patches and snapshots.
"""
import base64
import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from ..utils.exceptions import InvalidConfigurationError
from ..utils.helpers import format_timestamp, new_id, parse_timestamp, utcnow


class PatchType(Enum):
    FEATURE_CLIPPING = "feature_clipping"
    FEATURE_REWEIGHTING = "feature_reweighting"
    THRESHOLD_TUNING = "threshold_tuning"
    NORMALIZATION_UPDATE = "normalization_update"
    OUTLIER_REMOVAL = "outlier_removal"
    MODEL_UPDATE = "model_update"


class PatchStatus(Enum):
    CREATED = "created"
    VALIDATED = "validated"
    APPLIED = "applied"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


def _require_finite(config_name: str, **values: float) -> None:
    for name, value in values.items():
        if value is None or not math.isfinite(value):
            raise InvalidConfigurationError(
                f"{config_name}.{name} must be a finite number",
                details={name: value}
            )


def _require_feature(config_name: str, feature: str) -> None:
    if not feature:
        raise InvalidConfigurationError(f"{config_name}.feature must be non-empty")


@dataclass(frozen=True)
class FeatureClipping:
    feature: str
    lower_bound: float
    upper_bound: float

    patch_type = PatchType.FEATURE_CLIPPING

    def __post_init__(self):
        _require_feature("FeatureClipping", self.feature)
        _require_finite("FeatureClipping", lower_bound=self.lower_bound, upper_bound=self.upper_bound)
        if self.lower_bound > self.upper_bound:
            raise InvalidConfigurationError(
                "FeatureClipping lower_bound exceeds upper_bound",
                details={"feature": self.feature, "lower": self.lower_bound, "upper": self.upper_bound}
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patch_type": self.patch_type.value,
            "feature": self.feature,
            "lower_bound": self.lower_bound,
            "upper_bound": self.upper_bound,
        }


@dataclass(frozen=True)
class FeatureReweighting:
    weights: Dict[str, float]

    patch_type = PatchType.FEATURE_REWEIGHTING

    def __post_init__(self):
        if not self.weights:
            raise InvalidConfigurationError("FeatureReweighting requires at least one weight")
        for feature, weight in self.weights.items():
            _require_feature("FeatureReweighting", feature)
            _require_finite("FeatureReweighting", weight=weight)
            if weight < 0:
                raise InvalidConfigurationError(
                    "FeatureReweighting weights must be non-negative",
                    details={"feature": feature, "weight": weight}
                )
        object.__setattr__(self, "weights", dict(self.weights))

    def to_dict(self) -> Dict[str, Any]:
        return {"patch_type": self.patch_type.value, "weights": dict(self.weights)}


@dataclass(frozen=True)
class ThresholdTuning:
    decision_threshold: float

    patch_type = PatchType.THRESHOLD_TUNING

    def __post_init__(self):
        _require_finite("ThresholdTuning", decision_threshold=self.decision_threshold)
        if not 0.0 < self.decision_threshold < 1.0:
            raise InvalidConfigurationError(
                "ThresholdTuning decision_threshold must be within (0, 1)",
                details={"decision_threshold": self.decision_threshold}
            )

    def to_dict(self) -> Dict[str, Any]:
        return {"patch_type": self.patch_type.value, "decision_threshold": self.decision_threshold}


@dataclass(frozen=True)
class NormalizationUpdate:
    feature: str
    new_mean: float
    new_std: float

    patch_type = PatchType.NORMALIZATION_UPDATE

    def __post_init__(self):
        _require_feature("NormalizationUpdate", self.feature)
        _require_finite("NormalizationUpdate", new_mean=self.new_mean, new_std=self.new_std)
        if self.new_std <= 0:
            raise InvalidConfigurationError(
                "NormalizationUpdate new_std must be positive",
                details={"feature": self.feature, "new_std": self.new_std}
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patch_type": self.patch_type.value,
            "feature": self.feature,
            "new_mean": self.new_mean,
            "new_std": self.new_std,
        }


@dataclass(frozen=True)
class OutlierRemoval:
    feature: str
    z_score_cutoff: float

    patch_type = PatchType.OUTLIER_REMOVAL

    def __post_init__(self):
        _require_feature("OutlierRemoval", self.feature)
        _require_finite("OutlierRemoval", z_score_cutoff=self.z_score_cutoff)
        if self.z_score_cutoff <= 0:
            raise InvalidConfigurationError(
                "OutlierRemoval z_score_cutoff must be positive",
                details={"feature": self.feature, "z_score_cutoff": self.z_score_cutoff}
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patch_type": self.patch_type.value,
            "feature": self.feature,
            "z_score_cutoff": self.z_score_cutoff,
        }


@dataclass(frozen=True)
class ModelUpdate:
    parameter_deltas: Dict[str, float]

    patch_type = PatchType.MODEL_UPDATE

    def __post_init__(self):
        if not self.parameter_deltas:
            raise InvalidConfigurationError("ModelUpdate requires at least one parameter delta")
        for key, delta in self.parameter_deltas.items():
            if not key:
                raise InvalidConfigurationError("ModelUpdate parameter names must be non-empty")
            _require_finite("ModelUpdate", delta=delta)
        object.__setattr__(self, "parameter_deltas", dict(self.parameter_deltas))

    def to_dict(self) -> Dict[str, Any]:
        return {"patch_type": self.patch_type.value, "parameter_deltas": dict(self.parameter_deltas)}


PatchConfiguration = Union[
    FeatureClipping,
    FeatureReweighting,
    ThresholdTuning,
    NormalizationUpdate,
    OutlierRemoval,
    ModelUpdate,
]

_CONFIGURATION_CLASSES = {
    PatchType.FEATURE_CLIPPING: FeatureClipping,
    PatchType.FEATURE_REWEIGHTING: FeatureReweighting,
    PatchType.THRESHOLD_TUNING: ThresholdTuning,
    PatchType.NORMALIZATION_UPDATE: NormalizationUpdate,
    PatchType.OUTLIER_REMOVAL: OutlierRemoval,
    PatchType.MODEL_UPDATE: ModelUpdate,
}


def configuration_from_dict(data: Dict[str, Any]) -> PatchConfiguration:
    """
    Rebuild a configuration variant from its dict form.

    Raises:
        InvalidConfigurationError: Unknown patch type or malformed fields
    """
    payload = dict(data)
    try:
        patch_type = PatchType(payload.pop("patch_type"))
    except (KeyError, ValueError) as e:
        raise InvalidConfigurationError(
            "Unknown patch configuration type",
            details={"data": data, "error": str(e)}
        )
    try:
        return _CONFIGURATION_CLASSES[patch_type](**payload)
    except TypeError as e:
        raise InvalidConfigurationError(
            f"Malformed {patch_type.value} configuration",
            details={"data": data, "error": str(e)}
        )


def describe_configuration(config: PatchConfiguration) -> str:
    """One-line human readable summary of a configuration."""
    if isinstance(config, FeatureClipping):
        return f"Clip '{config.feature}' to [{config.lower_bound:.4g}, {config.upper_bound:.4g}]"
    if isinstance(config, FeatureReweighting):
        parts = ", ".join(f"{name}={weight:.3f}" for name, weight in sorted(config.weights.items()))
        return f"Reweight features: {parts}"
    if isinstance(config, ThresholdTuning):
        return f"Set decision threshold to {config.decision_threshold:.3f}"
    if isinstance(config, NormalizationUpdate):
        return (
            f"Renormalize '{config.feature}' with mean {config.new_mean:.4g}"
            f" and std {config.new_std:.4g}"
        )
    if isinstance(config, OutlierRemoval):
        return f"Cap '{config.feature}' outliers beyond {config.z_score_cutoff:.2f} sigma"
    if isinstance(config, ModelUpdate):
        return f"Adjust {len(config.parameter_deltas)} model parameter(s)"
    raise InvalidConfigurationError(f"Unsupported configuration: {type(config).__name__}")


@dataclass(frozen=True)
class ValidationResult:
    """Metrics and gate decision for one validated patch."""

    is_valid: bool
    accuracy: float
    precision: float
    recall: float
    f1: float
    safety_score: float
    drift_score_before: float
    drift_score_after: float
    errors: Tuple[str, ...] = ()
    baseline_f1: float = 0.0
    accuracy_ci_lower: float = 0.0
    accuracy_ci_upper: float = 0.0
    sample_count: int = 0

    def __post_init__(self):
        object.__setattr__(self, "errors", tuple(self.errors))

    @property
    def drift_reduction(self) -> float:
        return self.drift_score_before - self.drift_score_after

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "accuracy": self.accuracy,
            "precision": self.precision,
            "recall": self.recall,
            "f1": self.f1,
            "safety_score": self.safety_score,
            "drift_score_before": self.drift_score_before,
            "drift_score_after": self.drift_score_after,
            "errors": list(self.errors),
            "baseline_f1": self.baseline_f1,
            "accuracy_ci_lower": self.accuracy_ci_lower,
            "accuracy_ci_upper": self.accuracy_ci_upper,
            "sample_count": self.sample_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ValidationResult":
        payload = dict(data)
        payload["errors"] = tuple(payload.get("errors", ()))
        return cls(**payload)


@dataclass(frozen=True)
class Patch:
    """
    A candidate correction for a drifted model.

    Patches are immutable; a patch with a different status is produced only by
    `drift_patch.patching.state_machine.advance`.
    """

    model_id: str
    drift_result_id: str
    configuration: PatchConfiguration
    status: PatchStatus = PatchStatus.CREATED
    safety_score: float = 0.0
    validation_result: Optional[ValidationResult] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    applied_at: Optional[datetime] = None
    rolled_back_at: Optional[datetime] = None

    @property
    def patch_type(self) -> PatchType:
        return self.configuration.patch_type

    @property
    def description(self) -> str:
        return describe_configuration(self.configuration)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_type": "patch",
            "id": self.id,
            "model_id": self.model_id,
            "drift_result_id": self.drift_result_id,
            "patch_type": self.patch_type.value,
            "configuration": self.configuration.to_dict(),
            "status": self.status.value,
            "safety_score": self.safety_score,
            "validation_result": (
                self.validation_result.to_dict() if self.validation_result else None
            ),
            "created_at": format_timestamp(self.created_at),
            "applied_at": format_timestamp(self.applied_at),
            "rolled_back_at": format_timestamp(self.rolled_back_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Patch":
        validation = data.get("validation_result")
        return cls(
            id=data["id"],
            model_id=data["model_id"],
            drift_result_id=data["drift_result_id"],
            configuration=configuration_from_dict(data["configuration"]),
            status=PatchStatus(data["status"]),
            safety_score=data.get("safety_score", 0.0),
            validation_result=ValidationResult.from_dict(validation) if validation else None,
            created_at=parse_timestamp(data["created_at"]),
            applied_at=parse_timestamp(data.get("applied_at")),
            rolled_back_at=parse_timestamp(data.get("rolled_back_at")),
        )


@dataclass(frozen=True)
class PatchSnapshot:
    """Serialized live state captured around one apply."""

    patch_id: str
    model_id: str
    pre_apply_state: bytes
    post_apply_state: Optional[bytes] = None
    id: str = field(default_factory=new_id)
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_type": "patch_snapshot",
            "id": self.id,
            "patch_id": self.patch_id,
            "model_id": self.model_id,
            "timestamp": format_timestamp(self.timestamp),
            "pre_apply_state": base64.b64encode(self.pre_apply_state).decode("ascii"),
            "post_apply_state": (
                base64.b64encode(self.post_apply_state).decode("ascii")
                if self.post_apply_state is not None
                else None
            ),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PatchSnapshot":
        post = data.get("post_apply_state")
        return cls(
            id=data["id"],
            patch_id=data["patch_id"],
            model_id=data["model_id"],
            timestamp=parse_timestamp(data["timestamp"]),
            pre_apply_state=base64.b64decode(data["pre_apply_state"]),
            post_apply_state=base64.b64decode(post) if post is not None else None,
        )
