"""
Configuration settings for the drift patch component.

`Settings` carries environment-driven process settings. `DriftConfig` and
`ValidationConfig` are the explicit configuration objects handed to the
detector and validator; they are never read from module state.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from ..utils.exceptions import InvalidConfigurationError
from . import constants


@dataclass(frozen=True)
class DriftConfig:
    """Thresholds and binning used by the drift detector."""

    psi_threshold: float = constants.PSI_THRESHOLD
    ks_threshold: float = constants.KS_THRESHOLD
    p_value_threshold: float = constants.P_VALUE_THRESHOLD
    aggregate_threshold: float = constants.AGGREGATE_DRIFT_THRESHOLD
    num_bins: int = constants.PSI_NUM_BINS
    psi_epsilon: float = constants.PSI_EPSILON
    feature_weights: Optional[Dict[str, float]] = None

    def __post_init__(self):
        if self.num_bins < 2:
            raise InvalidConfigurationError("num_bins must be at least 2")
        if self.psi_epsilon <= 0:
            raise InvalidConfigurationError("psi_epsilon must be positive")
        if not 0.0 <= self.ks_threshold <= 1.0:
            raise InvalidConfigurationError("ks_threshold must be within [0, 1]")
        if not 0.0 <= self.p_value_threshold <= 1.0:
            raise InvalidConfigurationError("p_value_threshold must be within [0, 1]")
        if self.feature_weights and any(w < 0 for w in self.feature_weights.values()):
            raise InvalidConfigurationError("feature_weights must be non-negative")


@dataclass(frozen=True)
class SafetyWeights:
    """
    Coefficients of the validator's safety score.

    The three terms are the bounded magnitude of the configuration change,
    the stability of F1 against the unpatched baseline and the normalized
    drift reduction. They are normalized by their sum when combined.
    """

    magnitude: float = constants.SAFETY_WEIGHT_MAGNITUDE
    stability: float = constants.SAFETY_WEIGHT_STABILITY
    drift_reduction: float = constants.SAFETY_WEIGHT_DRIFT_REDUCTION

    def __post_init__(self):
        if min(self.magnitude, self.stability, self.drift_reduction) < 0:
            raise InvalidConfigurationError("safety weights must be non-negative")
        if self.total == 0:
            raise InvalidConfigurationError("at least one safety weight must be positive")

    @property
    def total(self) -> float:
        return self.magnitude + self.stability + self.drift_reduction


@dataclass(frozen=True)
class ValidationConfig:
    """Tiered acceptance gate used by the patch validator."""

    safety_floor: float = constants.SAFETY_FLOOR
    drift_reduction_floor: float = constants.DRIFT_REDUCTION_FLOOR
    fast_track_sample_ceiling: int = constants.FAST_TRACK_SAMPLE_CEILING
    fast_track_safety_floor: float = constants.FAST_TRACK_SAFETY_FLOOR
    reject_safety_floor: float = constants.REJECT_SAFETY_FLOOR
    safety_weights: SafetyWeights = field(default_factory=SafetyWeights)


@dataclass
class Settings:
    """Drift patch settings for the component."""

    # Storage Configuration
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///drift_patch.db")

    # Drift Thresholds
    psi_threshold: float = float(os.getenv("PSI_THRESHOLD", str(constants.PSI_THRESHOLD)))
    ks_threshold: float = float(os.getenv("KS_THRESHOLD", str(constants.KS_THRESHOLD)))
    p_value_threshold: float = float(
        os.getenv("P_VALUE_THRESHOLD", str(constants.P_VALUE_THRESHOLD))
    )
    aggregate_drift_threshold: float = float(
        os.getenv("AGGREGATE_DRIFT_THRESHOLD", str(constants.AGGREGATE_DRIFT_THRESHOLD))
    )
    psi_num_bins: int = int(os.getenv("PSI_NUM_BINS", str(constants.PSI_NUM_BINS)))

    # Validation Gate
    safety_floor: float = float(os.getenv("SAFETY_FLOOR", str(constants.SAFETY_FLOOR)))
    drift_reduction_floor: float = float(
        os.getenv("DRIFT_REDUCTION_FLOOR", str(constants.DRIFT_REDUCTION_FLOOR))
    )
    fast_track_sample_ceiling: int = int(
        os.getenv("FAST_TRACK_SAMPLE_CEILING", str(constants.FAST_TRACK_SAMPLE_CEILING))
    )

    # Patch Synthesis
    synthesis_top_k: int = int(
        os.getenv("SYNTHESIS_TOP_K", str(constants.DEFAULT_TOP_K_FEATURES))
    )

    # Concurrency
    model_lock_timeout_seconds: float = float(
        os.getenv("MODEL_LOCK_TIMEOUT_SECONDS", str(constants.MODEL_LOCK_TIMEOUT_SECONDS))
    )

    # Prometheus Configuration
    prometheus_enabled: bool = os.getenv("PROMETHEUS_ENABLED", "false").lower() == "true"
    prometheus_port: int = int(os.getenv("PROMETHEUS_PORT", "9092"))

    # Logging Configuration
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_format: str = os.getenv("LOG_FORMAT", "json")

    def drift_config(self) -> DriftConfig:
        """Build the detector configuration from these settings."""
        return DriftConfig(
            psi_threshold=self.psi_threshold,
            ks_threshold=self.ks_threshold,
            p_value_threshold=self.p_value_threshold,
            aggregate_threshold=self.aggregate_drift_threshold,
            num_bins=self.psi_num_bins,
        )

    def validation_config(self) -> ValidationConfig:
        """Build the validator configuration from these settings."""
        return ValidationConfig(
            safety_floor=self.safety_floor,
            drift_reduction_floor=self.drift_reduction_floor,
            fast_track_sample_ceiling=self.fast_track_sample_ceiling,
        )


# Global settings instance
settings = Settings()
