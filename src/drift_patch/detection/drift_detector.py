"""
Per-feature drift detection and drift-type classification.

Detects changes in feature distributions between reference (training) and
current (production) data with PSI and the two-sample KS test, then classifies
the drift as PRIOR, CONCEPT or COVARIATE with an ordered decision tree.
"""
import time
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..config import DriftConfig, get_logger
from ..config.constants import (
    CONCEPT_MAX_DRIFT_RATIO,
    CONCEPT_MIN_DRIFT_RATIO,
    CONCEPT_STD_TO_MEAN_RATIO,
    CONSISTENCY_THRESHOLD,
    COVARIATE_MIN_DRIFT_RATIO,
    MEAN_SHIFT_FLOOR,
    MIN_DRIFT_RATIO,
    PRIOR_MAX_DRIFT_RATIO,
    PRIOR_MEAN_TO_STD_RATIO,
    TIE_BREAK_CONCEPT_RATIO,
    TIE_BREAK_COVARIATE_RATIO,
)
from ..models import (
    DistributionShift,
    DriftResult,
    DriftType,
    FeatureDrift,
    FeatureSample,
    SampleRole,
)
from ..monitoring.metrics import record_detection
from ..utils import InsufficientDataError, MetricsComputationException, check_cancelled
from ..utils.helpers import safe_divide
from ..utils.statistical_tests import (
    coefficient_of_variation,
    compute_psi_score,
    ks_test_2sample,
    squash_score,
)
from .normalizer import DistributionNormalizer, as_matrix

logger = get_logger(__name__)

QUANTILES = (0.25, 0.5, 0.75)


def is_feature_drifted(
    psi_score: float,
    ks_statistic: float,
    p_value: float,
    config: DriftConfig
) -> bool:
    """PSI alone, or a KS statistic that is both large and significant."""
    return psi_score > config.psi_threshold or (
        ks_statistic > config.ks_threshold and p_value < config.p_value_threshold
    )


def _distribution_shift(reference: np.ndarray, current: np.ndarray) -> DistributionShift:
    ref_q = np.quantile(reference, QUANTILES)
    cur_q = np.quantile(current, QUANTILES)
    return DistributionShift(
        mean_shift=float(np.mean(current) - np.mean(reference)),
        std_shift=float(np.std(current) - np.std(reference)),
        min_shift=float(np.min(current) - np.min(reference)),
        max_shift=float(np.max(current) - np.max(reference)),
        quantile_shifts={f"q{int(q * 100)}": float(c - r) for q, c, r in zip(QUANTILES, cur_q, ref_q)},
    )


def drift_signals(feature_drifts: Sequence[FeatureDrift]) -> Tuple[float, float, float, float]:
    """
    Signals feeding the drift-type decision tree.

    Shift averages and PSI consistency are taken over drifted features only.

    Returns:
        (drift_ratio, avg_mean_shift, avg_std_shift, drift_consistency)
    """
    if not feature_drifts:
        return 0.0, 0.0, 0.0, 0.0

    drifted = [fd for fd in feature_drifts if fd.is_drifted]
    drift_ratio = len(drifted) / len(feature_drifts)
    if not drifted:
        return drift_ratio, 0.0, 0.0, 0.0

    avg_mean_shift = float(np.mean([abs(fd.mean_shift) for fd in drifted]))
    avg_std_shift = float(np.mean([abs(fd.std_shift) for fd in drifted]))
    drift_consistency = coefficient_of_variation(np.array([fd.psi_score for fd in drifted]))
    return drift_ratio, avg_mean_shift, avg_std_shift, drift_consistency


def classify_drift_type(
    feature_drifts: Sequence[FeatureDrift],
    is_drift_detected: bool
) -> DriftType:
    """
    Classify detected drift.

    Branches are evaluated in order; their conditions overlap.

    Args:
        feature_drifts: Per-feature results of one run
        is_drift_detected: Aggregate verdict of the run

    Returns:
        Drift type
    """
    drift_ratio, avg_mean_shift, avg_std_shift, drift_consistency = drift_signals(feature_drifts)

    if not is_drift_detected or drift_ratio < MIN_DRIFT_RATIO:
        return DriftType.NONE

    if drift_ratio < PRIOR_MAX_DRIFT_RATIO and avg_mean_shift > PRIOR_MEAN_TO_STD_RATIO * avg_std_shift:
        return DriftType.PRIOR

    shape_dominated = (
        avg_std_shift / max(avg_mean_shift, MEAN_SHIFT_FLOOR) > CONCEPT_STD_TO_MEAN_RATIO
    )
    if (
        CONCEPT_MIN_DRIFT_RATIO <= drift_ratio <= CONCEPT_MAX_DRIFT_RATIO
        and drift_consistency > CONSISTENCY_THRESHOLD
    ) or shape_dominated:
        return DriftType.CONCEPT

    if drift_ratio > COVARIATE_MIN_DRIFT_RATIO and drift_consistency < CONSISTENCY_THRESHOLD:
        return DriftType.COVARIATE

    if drift_ratio > TIE_BREAK_COVARIATE_RATIO:
        return DriftType.COVARIATE
    if drift_ratio > TIE_BREAK_CONCEPT_RATIO:
        return DriftType.CONCEPT
    return DriftType.PRIOR


class DriftDetector:
    """
    Detector for drift in standardized feature distributions.

    Uses two statistical tests per feature:
    - Population Stability Index (PSI) on reference quantile bins
    - Kolmogorov-Smirnov (KS) two-sample test
    """

    def __init__(self):
        self.logger = logger

    def compute_feature_drift(
        self,
        feature_name: str,
        reference: np.ndarray,
        current: np.ndarray,
        config: DriftConfig
    ) -> FeatureDrift:
        """
        Compute drift statistics of one standardized feature.

        Args:
            feature_name: Feature name
            reference: Standardized reference values
            current: Standardized current values
            config: Detector configuration

        Returns:
            FeatureDrift
        """
        try:
            psi = compute_psi_score(current, reference, config.num_bins, config.psi_epsilon)
            ks_statistic, p_value = ks_test_2sample(reference, current)
            shift = _distribution_shift(reference, current)
        except (ValueError, FloatingPointError) as e:
            self.logger.error("feature_drift_failed", feature=feature_name, error=str(e))
            raise MetricsComputationException(
                f"Drift computation failed for feature {feature_name}",
                details={"feature": feature_name, "error": str(e)}
            )

        return FeatureDrift(
            feature_name=feature_name,
            psi_score=psi,
            ks_statistic=ks_statistic,
            p_value=p_value,
            mean_shift=shift.mean_shift,
            std_shift=shift.std_shift,
            is_drifted=is_feature_drifted(psi, ks_statistic, p_value, config),
            distribution_shift=shift,
        )

    def compute_feature_drifts(
        self,
        normalized_reference,
        normalized_current,
        feature_names: Sequence[str],
        config: DriftConfig,
        cancel_token=None
    ) -> List[FeatureDrift]:
        """Per-feature drift in column order, checking cancellation between features."""
        ref = as_matrix(normalized_reference, "reference")
        cur = as_matrix(normalized_current, "current")
        feature_names = list(feature_names)

        if ref.shape[1] != cur.shape[1] or ref.shape[1] != len(feature_names):
            raise InsufficientDataError(
                "Feature count mismatch",
                details={
                    "reference_features": int(ref.shape[1]),
                    "current_features": int(cur.shape[1]),
                    "feature_names": len(feature_names)
                }
            )

        feature_drifts: List[FeatureDrift] = []
        for idx, name in enumerate(feature_names):
            check_cancelled(cancel_token, "drift_detection")
            reference_sample = FeatureSample(name, SampleRole.REFERENCE, ref[:, idx])
            current_sample = FeatureSample(name, SampleRole.CURRENT, cur[:, idx])
            feature_drifts.append(self.compute_sample_drift(reference_sample, current_sample, config))
        return feature_drifts

    def compute_sample_drift(
        self,
        reference: FeatureSample,
        current: FeatureSample,
        config: DriftConfig
    ) -> FeatureDrift:
        """
        Drift between a reference and a current sample of the same feature.

        Raises:
            InsufficientDataError: Samples of different features, or roles
                not (REFERENCE, CURRENT)
        """
        if reference.feature_name != current.feature_name:
            raise InsufficientDataError(
                "Samples belong to different features",
                details={"reference": reference.feature_name, "current": current.feature_name}
            )
        if reference.role != SampleRole.REFERENCE or current.role != SampleRole.CURRENT:
            raise InsufficientDataError(
                "Samples must be one reference and one current",
                details={"reference_role": reference.role.value, "current_role": current.role.value}
            )
        return self.compute_feature_drift(reference.feature_name, reference.values, current.values, config)

    def drift_score(
        self,
        normalized_reference,
        normalized_current,
        feature_names: Sequence[str],
        config: DriftConfig,
        cancel_token=None
    ) -> float:
        """Aggregate drift score only, without classification or metrics."""
        feature_drifts = self.compute_feature_drifts(
            normalized_reference, normalized_current, feature_names, config, cancel_token
        )
        return self.aggregate_score(feature_drifts, config)

    def aggregate_score(self, feature_drifts: Sequence[FeatureDrift], config: DriftConfig) -> float:
        """Weighted mean PSI squashed into [0, 1]."""
        if not feature_drifts:
            return 0.0
        weights = np.array([
            (config.feature_weights or {}).get(fd.feature_name, 1.0) for fd in feature_drifts
        ])
        psi = np.array([fd.psi_score for fd in feature_drifts])
        weighted_psi = safe_divide(float(np.sum(weights * psi)), float(np.sum(weights)))
        return float(np.clip(squash_score(weighted_psi), 0.0, 1.0))

    def detect(
        self,
        normalized_reference,
        normalized_current,
        feature_names: Sequence[str],
        config: DriftConfig,
        model_id: str,
        cancel_token=None
    ) -> DriftResult:
        """
        Run drift detection over every feature.

        Args:
            normalized_reference: Reference matrix standardized with reference statistics
            normalized_current: Current matrix standardized with reference statistics
            feature_names: Column names, in column order
            config: Detector configuration
            model_id: Monitored model
            cancel_token: Optional CancellationToken, checked between features

        Returns:
            DriftResult with feature drifts in input order and no attribution

        Raises:
            InsufficientDataError: Empty or mismatched inputs
            OperationCancelledError: Cancellation requested
        """
        start = time.perf_counter()
        feature_drifts = self.compute_feature_drifts(
            normalized_reference, normalized_current, feature_names, config, cancel_token
        )

        drift_score = self.aggregate_score(feature_drifts, config)
        is_drift_detected = drift_score > config.aggregate_threshold or any(
            fd.is_drifted for fd in feature_drifts
        )
        drift_type = classify_drift_type(feature_drifts, is_drift_detected)
        drift_ratio, _, _, drift_consistency = drift_signals(feature_drifts)

        result = DriftResult(
            model_id=model_id,
            drift_score=drift_score,
            drift_type=drift_type,
            feature_drifts=tuple(feature_drifts),
            is_drift_detected=is_drift_detected,
            threshold=config.aggregate_threshold,
            drift_ratio=drift_ratio,
            drift_consistency=drift_consistency,
        )

        duration = time.perf_counter() - start
        record_detection(result, duration)

        if is_drift_detected:
            self.logger.warning(
                "drift_detected",
                model_id=model_id,
                drift_score=drift_score,
                drift_type=drift_type.value,
                severity=result.severity.value,
                drifted_features=list(result.drifted_features),
            )
        else:
            self.logger.info("no_drift_detected", model_id=model_id, drift_score=drift_score)

        return result


def detect_drift(
    reference,
    current,
    feature_names: Sequence[str],
    config: Optional[DriftConfig] = None,
    model_id: str = "default",
    cancel_token=None
) -> DriftResult:
    """
    Normalize raw matrices against the reference, then run detection.

    Args:
        reference: Raw reference matrix
        current: Raw current matrix
        feature_names: Column names
        config: Detector configuration (defaults to DriftConfig())
        model_id: Monitored model
        cancel_token: Optional CancellationToken

    Returns:
        DriftResult
    """
    normalized_reference, normalized_current = DistributionNormalizer().normalize(reference, current)
    return DriftDetector().detect(
        normalized_reference,
        normalized_current,
        feature_names,
        config or DriftConfig(),
        model_id,
        cancel_token=cancel_token,
    )
