"""
Patch validation against a labelled validation set.

A candidate is scored on prediction quality (patched vs unpatched), on the
drift it leaves behind and on the size of the change it makes, then passed
through a tiered acceptance gate:

1. Reject if drift gets worse or safety is below the reject floor.
2. Standard: safety >= safety_floor and drift reduction >= drift_reduction_floor.
3. Fast-track for small validation sets: safety >= fast_track_safety_floor
   and any positive drift reduction.
4. Otherwise accept, recording a warning.
"""
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
from sklearn.metrics import accuracy_score, f1_score, precision_score, recall_score

from ..config import DriftConfig, ValidationConfig, get_logger
from ..config.constants import DRIFT_SCORE_TOLERANCE, WILSON_Z_95
from ..detection.drift_detector import DriftDetector
from ..detection.normalizer import DistributionNormalizer, as_matrix
from ..models import Patch, PatchConfiguration, ValidationResult, compute_feature_stats
from ..monitoring.metrics import record_validation
from ..utils import DriftPatchException, OperationCancelledError, check_cancelled
from ..utils.helpers import safe_divide
from ..utils.statistical_tests import wilson_interval
from .transforms import TransformState, configuration_magnitude

logger = get_logger(__name__)

TIER_STANDARD = "standard"
TIER_FAST_TRACK = "fast_track"
TIER_LENIENT = "lenient"
TIER_REJECTED = "rejected"
TIER_ERROR = "error"


def apply_gate(
    safety_score: float,
    drift_reduction: float,
    sample_count: int,
    config: ValidationConfig
) -> Tuple[bool, str, List[str]]:
    """
    Tiered acceptance decision.

    Returns:
        (is_valid, tier, messages)
    """
    if drift_reduction < 0:
        return False, TIER_REJECTED, [
            f"patch increases drift by {-drift_reduction:.4f}"
        ]
    if safety_score < config.reject_safety_floor:
        return False, TIER_REJECTED, [
            f"safety score {safety_score:.3f} below reject floor {config.reject_safety_floor:.3f}"
        ]
    if safety_score >= config.safety_floor and drift_reduction >= config.drift_reduction_floor:
        return True, TIER_STANDARD, []
    if (
        sample_count < config.fast_track_sample_ceiling
        and safety_score >= config.fast_track_safety_floor
        and drift_reduction > 0
    ):
        return True, TIER_FAST_TRACK, []
    return True, TIER_LENIENT, [
        f"warning: accepted below standard gate "
        f"(safety={safety_score:.3f}, drift_reduction={drift_reduction:.4f})"
    ]


def labels_from_outputs(outputs) -> np.ndarray:
    """Predicted labels; float scores are thresholded at 0.5."""
    values = np.asarray(outputs).ravel()
    if np.issubdtype(values.dtype, np.floating):
        return (values >= 0.5).astype(int)
    return values.astype(int)


class PatchValidator:
    """
    Validator for candidate patches.
    """

    def __init__(
        self,
        reference,
        current,
        feature_names: Sequence[str],
        drift_config: Optional[DriftConfig] = None,
        validation_config: Optional[ValidationConfig] = None,
        base_state: Optional[TransformState] = None
    ):
        """
        Initialize patch validator.

        Args:
            reference: Raw reference matrix
            current: Raw current matrix the patch is meant to correct
            feature_names: Column names
            drift_config: Detector configuration used for drift_score_after
            validation_config: Gate configuration
            base_state: Unpatched live state (defaults to reference standardization)
        """
        self.reference = as_matrix(reference, "reference")
        self.current = as_matrix(current, "current")
        self.feature_names = list(feature_names)
        self.drift_config = drift_config or DriftConfig()
        self.validation_config = validation_config or ValidationConfig()
        self.reference_stats = compute_feature_stats(self.reference, self.feature_names)
        self.base_state = base_state or TransformState.from_reference(
            self.feature_names, self.reference_stats
        )
        self.detector = DriftDetector()
        self._baseline_drift: Optional[float] = None
        self.logger = logger

    def baseline_drift_score(self, cancel_token=None) -> float:
        """
        Drift of the unpatched current data, scored on the same basis as
        drift_score_after: both matrices go through base_state.

        Computed once per validator.
        """
        if self._baseline_drift is None:
            self._baseline_drift = self._score(self.base_state, cancel_token)
        return self._baseline_drift

    def drift_score_after(self, configuration: PatchConfiguration, cancel_token=None) -> float:
        """
        Drift of the patched current data against the reference.

        The reference goes through the unpatched state and the current data
        through the patched state; both are then normalized against the
        transformed reference and scored.
        """
        return self._score(self.base_state.with_configuration(configuration), cancel_token)

    def _score(self, patched_state: TransformState, cancel_token=None) -> float:
        reference_t = self.base_state.transform(self.reference)
        current_t = patched_state.transform(self.current)
        normalized_reference, normalized_current = DistributionNormalizer().normalize(
            reference_t, current_t
        )
        return self.detector.drift_score(
            normalized_reference,
            normalized_current,
            self.feature_names,
            self.drift_config,
            cancel_token=cancel_token,
        )

    def safety_score(
        self,
        magnitude: float,
        f1_patched: float,
        f1_baseline: float,
        drift_reduction: float,
        drift_score_before: float
    ) -> float:
        """
        Weighted combination of change size, F1 stability and drift reduction.

        Each term lies in [0, 1]; the result is normalized by the total weight.
        """
        weights = self.validation_config.safety_weights
        f1_drop = max(f1_baseline - f1_patched, 0.0)
        stability = 1.0 - min(1.0, safe_divide(f1_drop, f1_baseline)) if f1_baseline > 0 else 1.0
        reduction = float(np.clip(safe_divide(drift_reduction, drift_score_before), 0.0, 1.0))

        score = (
            weights.magnitude * (1.0 - magnitude)
            + weights.stability * stability
            + weights.drift_reduction * reduction
        ) / weights.total
        return float(np.clip(score, 0.0, 1.0))

    def _failure(self, patch: Patch, error: str, drift_score_before: float, n: int) -> ValidationResult:
        self.logger.warning(
            "patch_validation_error",
            patch_id=patch.id,
            model_id=patch.model_id,
            error=error,
        )
        record_validation(patch.patch_type.value, TIER_ERROR)
        return ValidationResult(
            is_valid=False,
            accuracy=0.0,
            precision=0.0,
            recall=0.0,
            f1=0.0,
            safety_score=0.0,
            drift_score_before=drift_score_before,
            drift_score_after=drift_score_before,
            errors=(error,),
            sample_count=n,
        )

    def validate(
        self,
        patch: Patch,
        validation_inputs,
        validation_labels,
        predict_fn: Callable,
        drift_score_before: float,
        cancel_token=None
    ) -> ValidationResult:
        """
        Validate one candidate patch.

        Prediction failures and malformed inputs are reported as an invalid
        result with the error recorded, never raised.

        Args:
            patch: Candidate patch
            validation_inputs: Raw validation matrix
            validation_labels: Binary labels
            predict_fn: predict_fn(inputs, configuration_or_None) -> outputs
            drift_score_before: Drift score of the unpatched model, reported
                when validation stops before drift is re-evaluated. Once
                drift is re-evaluated it is replaced by baseline_drift_score()
                so both scores share the live state as their basis.
            cancel_token: Optional CancellationToken

        Returns:
            ValidationResult
        """
        labels = np.asarray(validation_labels).ravel().astype(int)
        n = len(labels)
        if n == 0:
            return self._failure(patch, "validation set is empty", drift_score_before, n)
        if len(validation_inputs) != n:
            return self._failure(
                patch,
                f"validation inputs ({len(validation_inputs)}) and labels ({n}) differ in length",
                drift_score_before,
                n,
            )

        check_cancelled(cancel_token, "patch_validation")
        try:
            baseline_pred = labels_from_outputs(predict_fn(validation_inputs, None))
            patched_pred = labels_from_outputs(predict_fn(validation_inputs, patch.configuration))
        except Exception as e:
            return self._failure(patch, f"prediction failed: {e}", drift_score_before, n)

        if len(baseline_pred) != n or len(patched_pred) != n:
            return self._failure(
                patch,
                f"prediction length mismatch (expected {n}, got "
                f"{len(baseline_pred)} unpatched and {len(patched_pred)} patched)",
                drift_score_before,
                n,
            )

        baseline_f1 = float(f1_score(labels, baseline_pred, zero_division=0.0))
        accuracy = float(accuracy_score(labels, patched_pred))
        precision = float(precision_score(labels, patched_pred, zero_division=0.0))
        recall = float(recall_score(labels, patched_pred, zero_division=0.0))
        f1 = float(f1_score(labels, patched_pred, zero_division=0.0))
        ci_lower, ci_upper = wilson_interval(accuracy, n, WILSON_Z_95)

        check_cancelled(cancel_token, "patch_validation")
        try:
            baseline_drift = self.baseline_drift_score(cancel_token)
            drift_after = self.drift_score_after(patch.configuration, cancel_token)
        except OperationCancelledError:
            raise
        except DriftPatchException as e:
            return self._failure(patch, f"drift re-evaluation failed: {e.message}", drift_score_before, n)

        if abs(baseline_drift - drift_score_before) > DRIFT_SCORE_TOLERANCE:
            self.logger.debug(
                "baseline_drift_rescored",
                patch_id=patch.id,
                reported=drift_score_before,
                baseline=baseline_drift,
            )
        drift_score_before = baseline_drift
        if abs(drift_score_before - drift_after) < DRIFT_SCORE_TOLERANCE:
            drift_after = drift_score_before
        drift_reduction = drift_score_before - drift_after

        magnitude = configuration_magnitude(patch.configuration, self.reference_stats)
        safety = self.safety_score(magnitude, f1, baseline_f1, drift_reduction, drift_score_before)

        is_valid, tier, messages = apply_gate(safety, drift_reduction, n, self.validation_config)
        record_validation(patch.patch_type.value, tier)

        self.logger.info(
            "patch_validated",
            patch_id=patch.id,
            model_id=patch.model_id,
            patch_type=patch.patch_type.value,
            is_valid=is_valid,
            tier=tier,
            safety_score=safety,
            drift_reduction=drift_reduction,
            f1=f1,
            baseline_f1=baseline_f1,
        )

        return ValidationResult(
            is_valid=is_valid,
            accuracy=accuracy,
            precision=precision,
            recall=recall,
            f1=f1,
            safety_score=safety,
            drift_score_before=drift_score_before,
            drift_score_after=drift_after,
            errors=tuple(messages),
            baseline_f1=baseline_f1,
            accuracy_ci_lower=ci_lower,
            accuracy_ci_upper=ci_upper,
            sample_count=n,
        )
