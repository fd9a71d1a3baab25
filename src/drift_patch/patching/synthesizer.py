"""
Candidate patch synthesis from a ranked drift result.

The candidates depend on the drift type:

- PRIOR: threshold tuning plus reweighting of the one or two implicated features
- CONCEPT: reweighting of every drifted feature plus a model parameter update
- COVARIATE: renormalization and percentile clipping of the top features, and
  outlier capping where the spread widened
- NONE: no candidates
"""
from typing import Callable, Dict, List, Mapping, Optional, Sequence

import numpy as np

from ..config import get_logger
from ..config.constants import (
    DEFAULT_DECISION_THRESHOLD,
    DEFAULT_TOP_K_FEATURES,
    MAX_DECISION_THRESHOLD,
    MIN_DECISION_THRESHOLD,
    MODEL_UPDATE_DAMPING,
    OUTLIER_STD_SHIFT_TRIGGER,
    OUTLIER_Z_SCORE_CUTOFF,
    PRIOR_MAX_IMPLICATED_FEATURES,
    THRESHOLD_SHIFT_FRACTION,
)
from ..detection.attribution import AttributionRanker
from ..models import (
    DriftResult,
    DriftType,
    FeatureClipping,
    FeatureDrift,
    FeatureReweighting,
    FeatureStats,
    ModelUpdate,
    NormalizationUpdate,
    OutlierRemoval,
    Patch,
    PatchConfiguration,
    ThresholdTuning,
)
from ..utils import InvalidConfigurationError, check_cancelled
from .transforms import bias_key, configuration_magnitude

logger = get_logger(__name__)


class PatchSynthesizer:
    """
    Build CREATED candidate patches for a drift result.
    """

    def __init__(
        self,
        threshold_shift_fraction: float = THRESHOLD_SHIFT_FRACTION,
        model_update_damping: float = MODEL_UPDATE_DAMPING,
        outlier_z_score_cutoff: float = OUTLIER_Z_SCORE_CUTOFF,
        outlier_std_shift_trigger: float = OUTLIER_STD_SHIFT_TRIGGER,
        max_implicated_features: int = PRIOR_MAX_IMPLICATED_FEATURES
    ):
        self.threshold_shift_fraction = threshold_shift_fraction
        self.model_update_damping = model_update_damping
        self.outlier_z_score_cutoff = outlier_z_score_cutoff
        self.outlier_std_shift_trigger = outlier_std_shift_trigger
        self.max_implicated_features = max_implicated_features
        self.ranker = AttributionRanker()
        self.logger = logger

    def _ranked(self, drift_result: DriftResult) -> DriftResult:
        if drift_result.attribution:
            return drift_result
        return self.ranker.rank_result(drift_result)

    @staticmethod
    def target_features(drift_result: DriftResult, top_k_features: int) -> List[FeatureDrift]:
        """Drifted features in attribution order, at most top_k_features."""
        drifted = [fd for fd in drift_result.feature_drifts if fd.is_drifted]
        drifted.sort(key=lambda fd: (-drift_result.contribution_of(fd.feature_name), fd.feature_name))
        return drifted[:max(top_k_features, 0)]

    @staticmethod
    def reweighting_weights(drift_result: DriftResult, features: Sequence[FeatureDrift]) -> Dict[str, float]:
        """Down-weight each feature by its contribution: w = 1 / (1 + c)."""
        return {
            fd.feature_name: 1.0 / (1.0 + drift_result.contribution_of(fd.feature_name))
            for fd in features
        }

    def _build(
        self,
        factory: Callable[[], PatchConfiguration],
        description: str,
        drift_result: DriftResult,
        reference_stats: Mapping[str, FeatureStats],
        decision_threshold: float
    ) -> Optional[Patch]:
        try:
            configuration = factory()
        except (InvalidConfigurationError, KeyError) as e:
            self.logger.warning(
                "patch_candidate_dropped",
                model_id=drift_result.model_id,
                candidate=description,
                error=getattr(e, "message", str(e)),
            )
            return None

        magnitude = configuration_magnitude(configuration, reference_stats, decision_threshold)
        return Patch(
            model_id=drift_result.model_id,
            drift_result_id=drift_result.id,
            configuration=configuration,
            safety_score=1.0 - magnitude,
        )

    def _prior_candidates(self, drift_result, targets, decision_threshold):
        implicated = targets[:self.max_implicated_features]
        if not implicated:
            return []
        mean_shift = float(np.mean([fd.mean_shift for fd in implicated]))
        new_threshold = float(np.clip(
            decision_threshold + self.threshold_shift_fraction * mean_shift,
            MIN_DECISION_THRESHOLD,
            MAX_DECISION_THRESHOLD,
        ))
        weights = self.reweighting_weights(drift_result, implicated)
        return [
            ("threshold_tuning", lambda: ThresholdTuning(decision_threshold=new_threshold)),
            ("feature_reweighting", lambda: FeatureReweighting(weights=weights)),
        ]

    def _concept_candidates(self, drift_result, targets, decision_threshold):
        drifted = [fd for fd in drift_result.feature_drifts if fd.is_drifted]
        if not drifted:
            return []
        weights = self.reweighting_weights(drift_result, drifted)
        deltas = {
            bias_key(fd.feature_name): -self.model_update_damping * fd.mean_shift
            for fd in drifted
        }
        return [
            ("feature_reweighting", lambda: FeatureReweighting(weights=weights)),
            ("model_update", lambda: ModelUpdate(parameter_deltas=deltas)),
        ]

    def _covariate_candidates(self, drift_result, targets, current_stats, cancel_token):
        candidates = []
        for fd in targets:
            check_cancelled(cancel_token, "patch_synthesis")
            name = fd.feature_name
            candidates.append((
                f"normalization_update:{name}",
                lambda name=name: NormalizationUpdate(
                    feature=name,
                    new_mean=current_stats[name].mean,
                    new_std=current_stats[name].std,
                ),
            ))
            candidates.append((
                f"feature_clipping:{name}",
                lambda name=name: FeatureClipping(
                    feature=name,
                    lower_bound=current_stats[name].p01,
                    upper_bound=current_stats[name].p99,
                ),
            ))
            if fd.std_shift > self.outlier_std_shift_trigger:
                candidates.append((
                    f"outlier_removal:{name}",
                    lambda name=name: OutlierRemoval(
                        feature=name, z_score_cutoff=self.outlier_z_score_cutoff
                    ),
                ))
        return candidates

    def synthesize(
        self,
        drift_result: DriftResult,
        top_k_features: int = DEFAULT_TOP_K_FEATURES,
        reference_stats: Optional[Mapping[str, FeatureStats]] = None,
        current_stats: Optional[Mapping[str, FeatureStats]] = None,
        decision_threshold: float = DEFAULT_DECISION_THRESHOLD,
        cancel_token=None
    ) -> List[Patch]:
        """
        Synthesize candidate patches.

        Candidates whose configuration is malformed are logged and dropped.

        Args:
            drift_result: Detection result (ranked or not)
            top_k_features: Maximum number of targeted features
            reference_stats: Raw reference statistics per feature
            current_stats: Raw current statistics per feature
            decision_threshold: Live decision threshold of the model
            cancel_token: Optional CancellationToken

        Returns:
            CREATED patches with heuristic safety scores
        """
        if drift_result.drift_type == DriftType.NONE:
            self.logger.info("no_patch_needed", model_id=drift_result.model_id)
            return []

        ranked = self._ranked(drift_result)
        targets = self.target_features(ranked, top_k_features)
        reference_stats = reference_stats or {}
        current_stats = current_stats or {}

        if ranked.drift_type == DriftType.PRIOR:
            candidates = self._prior_candidates(ranked, targets, decision_threshold)
        elif ranked.drift_type == DriftType.CONCEPT:
            candidates = self._concept_candidates(ranked, targets, decision_threshold)
        else:
            candidates = self._covariate_candidates(ranked, targets, current_stats, cancel_token)

        patches = []
        for description, factory in candidates:
            check_cancelled(cancel_token, "patch_synthesis")
            patch = self._build(factory, description, ranked, reference_stats, decision_threshold)
            if patch is not None:
                patches.append(patch)

        self.logger.info(
            "patches_synthesized",
            model_id=ranked.model_id,
            drift_type=ranked.drift_type.value,
            targets=[fd.feature_name for fd in targets],
            n_candidates=len(patches),
            patch_types=[p.patch_type.value for p in patches],
        )
        return patches
