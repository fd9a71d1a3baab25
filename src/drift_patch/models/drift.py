"""
Drift records produced by the detector and the attribution ranker.

All records are immutable. `to_dict` / `from_dict` give the plain JSON form
the storage adapters persist.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..config.constants import (
    SEVERITY_CRITICAL,
    SEVERITY_HIGH,
    SEVERITY_LOW,
    SEVERITY_MODERATE,
)
from ..utils.exceptions import InsufficientDataError
from ..utils.helpers import format_timestamp, new_id, parse_timestamp, utcnow


class SampleRole(Enum):
    REFERENCE = "reference"
    CURRENT = "current"


class DriftType(Enum):
    NONE = "none"
    PRIOR = "prior"
    CONCEPT = "concept"
    COVARIATE = "covariate"


class DriftSeverity(Enum):
    MINIMAL = "minimal"
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def from_score(cls, drift_score: float) -> "DriftSeverity":
        if drift_score > SEVERITY_CRITICAL:
            return cls.CRITICAL
        if drift_score >= SEVERITY_HIGH:
            return cls.HIGH
        if drift_score >= SEVERITY_MODERATE:
            return cls.MODERATE
        if drift_score >= SEVERITY_LOW:
            return cls.LOW
        return cls.MINIMAL


@dataclass(frozen=True)
class FeatureSample:
    """Ordered scalar values of one feature, captured once and never mutated."""

    feature_name: str
    role: SampleRole
    values: np.ndarray

    def __post_init__(self):
        values = np.array(self.values, dtype=float, copy=True).ravel()
        values.setflags(write=False)
        object.__setattr__(self, "values", values)

    def __len__(self) -> int:
        return len(self.values)


@dataclass(frozen=True)
class FeatureStats:
    """Summary statistics of one raw feature column."""

    feature_name: str
    mean: float
    std: float
    p01: float
    p99: float
    minimum: float
    maximum: float
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "feature_name": self.feature_name,
            "mean": self.mean,
            "std": self.std,
            "p01": self.p01,
            "p99": self.p99,
            "minimum": self.minimum,
            "maximum": self.maximum,
            "count": self.count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeatureStats":
        return cls(**data)


def compute_feature_stats(matrix, feature_names: Sequence[str]) -> Dict[str, FeatureStats]:
    """
    Compute per-feature summary statistics of a raw matrix.

    Args:
        matrix: 2-D array-like or DataFrame, one column per feature
        feature_names: Column names, in column order

    Returns:
        Dictionary keyed by feature name
    """
    frame = pd.DataFrame(np.asarray(matrix, dtype=float), columns=list(feature_names))
    if frame.empty:
        raise InsufficientDataError(
            "Cannot compute statistics of an empty matrix",
            details={"features": list(feature_names)}
        )

    stats_dict = {}
    for col in frame.columns:
        series = frame[col]
        stats_dict[col] = FeatureStats(
            feature_name=col,
            mean=float(series.mean()),
            std=float(series.std(ddof=0)),
            p01=float(series.quantile(0.01)),
            p99=float(series.quantile(0.99)),
            minimum=float(series.min()),
            maximum=float(series.max()),
            count=int(series.count()),
        )
    return stats_dict


@dataclass(frozen=True)
class DistributionShift:
    """Location and quantile shifts of one feature, in reference sigma units."""

    mean_shift: float
    std_shift: float
    min_shift: float
    max_shift: float
    quantile_shifts: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mean_shift": self.mean_shift,
            "std_shift": self.std_shift,
            "min_shift": self.min_shift,
            "max_shift": self.max_shift,
            "quantile_shifts": dict(self.quantile_shifts),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DistributionShift":
        return cls(
            mean_shift=data["mean_shift"],
            std_shift=data["std_shift"],
            min_shift=data["min_shift"],
            max_shift=data["max_shift"],
            quantile_shifts=dict(data.get("quantile_shifts", {})),
        )


@dataclass(frozen=True)
class FeatureDrift:
    """Per-feature drift statistics."""

    feature_name: str
    psi_score: float
    ks_statistic: float
    p_value: float
    mean_shift: float
    std_shift: float
    is_drifted: bool
    distribution_shift: Optional[DistributionShift] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "feature_name": self.feature_name,
            "psi_score": self.psi_score,
            "ks_statistic": self.ks_statistic,
            "p_value": self.p_value,
            "mean_shift": self.mean_shift,
            "std_shift": self.std_shift,
            "is_drifted": self.is_drifted,
            "distribution_shift": (
                self.distribution_shift.to_dict() if self.distribution_shift else None
            ),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeatureDrift":
        shift = data.get("distribution_shift")
        return cls(
            feature_name=data["feature_name"],
            psi_score=data["psi_score"],
            ks_statistic=data["ks_statistic"],
            p_value=data["p_value"],
            mean_shift=data["mean_shift"],
            std_shift=data["std_shift"],
            is_drifted=data["is_drifted"],
            distribution_shift=DistributionShift.from_dict(shift) if shift else None,
        )


@dataclass(frozen=True)
class AttributionEntry:
    """Fraction of the total PSI contributed by one feature."""

    feature_name: str
    contribution: float

    def to_dict(self) -> Dict[str, Any]:
        return {"feature_name": self.feature_name, "contribution": self.contribution}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AttributionEntry":
        return cls(feature_name=data["feature_name"], contribution=data["contribution"])


@dataclass(frozen=True)
class DriftResult:
    """Outcome of one detection run for one model."""

    model_id: str
    drift_score: float
    drift_type: DriftType
    feature_drifts: Tuple[FeatureDrift, ...]
    is_drift_detected: bool
    threshold: float
    drift_ratio: float = 0.0
    drift_consistency: float = 0.0
    attribution: Tuple[AttributionEntry, ...] = ()
    id: str = field(default_factory=new_id)
    timestamp: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        object.__setattr__(self, "feature_drifts", tuple(self.feature_drifts))
        object.__setattr__(self, "attribution", tuple(self.attribution))

    @property
    def severity(self) -> DriftSeverity:
        return DriftSeverity.from_score(self.drift_score)

    @property
    def drifted_features(self) -> Tuple[str, ...]:
        return tuple(fd.feature_name for fd in self.feature_drifts if fd.is_drifted)

    def contribution_of(self, feature_name: str) -> float:
        for entry in self.attribution:
            if entry.feature_name == feature_name:
                return entry.contribution
        return 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_type": "drift_result",
            "id": self.id,
            "model_id": self.model_id,
            "timestamp": format_timestamp(self.timestamp),
            "drift_score": self.drift_score,
            "drift_type": self.drift_type.value,
            "feature_drifts": [fd.to_dict() for fd in self.feature_drifts],
            "is_drift_detected": self.is_drift_detected,
            "threshold": self.threshold,
            "drift_ratio": self.drift_ratio,
            "drift_consistency": self.drift_consistency,
            "attribution": [entry.to_dict() for entry in self.attribution],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DriftResult":
        return cls(
            id=data["id"],
            model_id=data["model_id"],
            timestamp=parse_timestamp(data["timestamp"]),
            drift_score=data["drift_score"],
            drift_type=DriftType(data["drift_type"]),
            feature_drifts=tuple(FeatureDrift.from_dict(fd) for fd in data["feature_drifts"]),
            is_drift_detected=data["is_drift_detected"],
            threshold=data["threshold"],
            drift_ratio=data.get("drift_ratio", 0.0),
            drift_consistency=data.get("drift_consistency", 0.0),
            attribution=tuple(AttributionEntry.from_dict(a) for a in data.get("attribution", [])),
        )
