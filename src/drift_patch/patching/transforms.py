"""
Live transform state of a served model and the effect of patches on it.

A `TransformState` is the part of a model's input pipeline and parameters
that patches are allowed to touch. It is immutable; applying a configuration
returns a new state. `to_bytes` is canonical JSON, so a state restored from a
snapshot serializes back to the same bytes.
"""
import json
import math
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, Mapping, Optional, Sequence, Tuple

import numpy as np

from ..config import get_logger
from ..config.constants import DEFAULT_DECISION_THRESHOLD, STD_FLOOR
from ..models import (
    FeatureClipping,
    FeatureReweighting,
    FeatureStats,
    ModelUpdate,
    NormalizationUpdate,
    OutlierRemoval,
    PatchConfiguration,
    ThresholdTuning,
)
from ..utils import InvalidConfigurationError, PatchApplicationError, SnapshotCorruptionError

logger = get_logger(__name__)

BIAS_SUFFIX = ".bias"


def bias_key(feature: str) -> str:
    return f"{feature}{BIAS_SUFFIX}"


@dataclass(frozen=True)
class TransformState:
    """Per-feature preprocessing and model parameters of one live model."""

    feature_names: Tuple[str, ...]
    means: Dict[str, float]
    stds: Dict[str, float]
    clip_bounds: Dict[str, Tuple[float, float]] = field(default_factory=dict)
    outlier_cutoffs: Dict[str, float] = field(default_factory=dict)
    weights: Dict[str, float] = field(default_factory=dict)
    parameters: Dict[str, float] = field(default_factory=dict)
    decision_threshold: float = DEFAULT_DECISION_THRESHOLD

    def __post_init__(self):
        object.__setattr__(self, "feature_names", tuple(self.feature_names))
        for name in ("means", "stds", "outlier_cutoffs", "weights", "parameters"):
            object.__setattr__(
                self, name, {k: float(v) for k, v in getattr(self, name).items()}
            )
        object.__setattr__(
            self,
            "clip_bounds",
            {k: (float(lo), float(hi)) for k, (lo, hi) in self.clip_bounds.items()},
        )
        object.__setattr__(self, "decision_threshold", float(self.decision_threshold))
        missing = [f for f in self.feature_names if f not in self.means or f not in self.stds]
        if missing:
            raise InvalidConfigurationError(
                "Transform state lacks statistics for features",
                details={"features": missing}
            )

    @classmethod
    def from_reference(
        cls,
        feature_names: Sequence[str],
        reference_stats: Mapping[str, FeatureStats]
    ) -> "TransformState":
        """Identity-patch state standardizing with reference statistics."""
        return cls(
            feature_names=tuple(feature_names),
            means={f: reference_stats[f].mean for f in feature_names},
            stds={f: max(reference_stats[f].std, STD_FLOOR) for f in feature_names},
        )

    def _require_feature(self, feature: str) -> None:
        if feature not in self.feature_names:
            raise PatchApplicationError(
                f"Unknown feature '{feature}'",
                details={"feature": feature, "known_features": list(self.feature_names)}
            )

    def with_configuration(self, config: PatchConfiguration) -> "TransformState":
        """
        Return the state obtained by applying config.

        Raises:
            PatchApplicationError: Configuration targets an unknown feature or
                is not a supported variant
        """
        means = dict(self.means)
        stds = dict(self.stds)
        clip_bounds = dict(self.clip_bounds)
        outlier_cutoffs = dict(self.outlier_cutoffs)
        weights = dict(self.weights)
        parameters = dict(self.parameters)
        decision_threshold = self.decision_threshold

        if isinstance(config, FeatureClipping):
            self._require_feature(config.feature)
            clip_bounds[config.feature] = (config.lower_bound, config.upper_bound)
        elif isinstance(config, FeatureReweighting):
            for feature, weight in config.weights.items():
                self._require_feature(feature)
                weights[feature] = weight
        elif isinstance(config, ThresholdTuning):
            decision_threshold = config.decision_threshold
        elif isinstance(config, NormalizationUpdate):
            self._require_feature(config.feature)
            means[config.feature] = config.new_mean
            stds[config.feature] = config.new_std
        elif isinstance(config, OutlierRemoval):
            self._require_feature(config.feature)
            outlier_cutoffs[config.feature] = config.z_score_cutoff
        elif isinstance(config, ModelUpdate):
            for key, delta in config.parameter_deltas.items():
                if key.endswith(BIAS_SUFFIX):
                    self._require_feature(key[: -len(BIAS_SUFFIX)])
                parameters[key] = parameters.get(key, 0.0) + delta
        else:
            raise PatchApplicationError(
                f"Unsupported configuration: {type(config).__name__}"
            )

        return TransformState(
            feature_names=self.feature_names,
            means=means,
            stds=stds,
            clip_bounds=clip_bounds,
            outlier_cutoffs=outlier_cutoffs,
            weights=weights,
            parameters=parameters,
            decision_threshold=decision_threshold,
        )

    def transform(self, data) -> np.ndarray:
        """
        Run raw inputs through the pipeline.

        Per feature: clip raw values, standardize, cap at the outlier cutoff,
        multiply by the weight, add the bias parameter.

        Args:
            data: Raw matrix, one column per feature in feature_names order

        Returns:
            Transformed float matrix of the same shape
        """
        matrix = np.array(data, dtype=float, copy=True)
        if matrix.ndim != 2 or matrix.shape[1] != len(self.feature_names):
            raise PatchApplicationError(
                "Input shape does not match transform features",
                details={"shape": list(matrix.shape), "n_features": len(self.feature_names)}
            )

        for idx, name in enumerate(self.feature_names):
            column = matrix[:, idx]
            if name in self.clip_bounds:
                lower, upper = self.clip_bounds[name]
                column = np.clip(column, lower, upper)
            column = (column - self.means[name]) / self.stds[name]
            if name in self.outlier_cutoffs:
                cutoff = self.outlier_cutoffs[name]
                column = np.clip(column, -cutoff, cutoff)
            column = column * self.weights.get(name, 1.0)
            column = column + self.parameters.get(bias_key(name), 0.0)
            matrix[:, idx] = column
        return matrix

    def to_dict(self) -> Dict:
        return {
            "feature_names": list(self.feature_names),
            "means": dict(self.means),
            "stds": dict(self.stds),
            "clip_bounds": {f: [lo, hi] for f, (lo, hi) in self.clip_bounds.items()},
            "outlier_cutoffs": dict(self.outlier_cutoffs),
            "weights": dict(self.weights),
            "parameters": dict(self.parameters),
            "decision_threshold": self.decision_threshold,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "TransformState":
        return cls(
            feature_names=tuple(data["feature_names"]),
            means={k: float(v) for k, v in data["means"].items()},
            stds={k: float(v) for k, v in data["stds"].items()},
            clip_bounds={k: (float(v[0]), float(v[1])) for k, v in data.get("clip_bounds", {}).items()},
            outlier_cutoffs={k: float(v) for k, v in data.get("outlier_cutoffs", {}).items()},
            weights={k: float(v) for k, v in data.get("weights", {}).items()},
            parameters={k: float(v) for k, v in data.get("parameters", {}).items()},
            decision_threshold=float(data.get("decision_threshold", DEFAULT_DECISION_THRESHOLD)),
        )

    def to_bytes(self) -> bytes:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":")).encode("utf-8")

    @classmethod
    def from_bytes(cls, payload: bytes) -> "TransformState":
        """
        Decode a serialized state.

        Raises:
            SnapshotCorruptionError: Payload is not a valid serialized state
        """
        try:
            return cls.from_dict(json.loads(payload.decode("utf-8")))
        except (ValueError, KeyError, TypeError, AttributeError, IndexError,
                InvalidConfigurationError) as e:
            raise SnapshotCorruptionError(
                "Cannot decode transform state",
                details={"error": str(e), "size": len(payload) if payload is not None else 0}
            )


def configuration_magnitude(
    config: PatchConfiguration,
    reference_stats: Optional[Mapping[str, FeatureStats]] = None,
    base_threshold: float = DEFAULT_DECISION_THRESHOLD
) -> float:
    """
    Bounded size of the change a configuration makes, in [0, 1].

    Feature-level changes are measured in reference standard deviations when
    reference_stats is given, raw units otherwise.
    """
    def ref_std(feature: str) -> float:
        if reference_stats and feature in reference_stats:
            return max(reference_stats[feature].std, STD_FLOOR)
        return 1.0

    def ref_mean(feature: str) -> float:
        if reference_stats and feature in reference_stats:
            return reference_stats[feature].mean
        return 0.0

    if isinstance(config, FeatureClipping):
        width = (config.upper_bound - config.lower_bound) / ref_std(config.feature)
        magnitude = math.exp(-width / 4.0)
    elif isinstance(config, FeatureReweighting):
        magnitude = max(abs(w - 1.0) for w in config.weights.values())
    elif isinstance(config, ThresholdTuning):
        magnitude = abs(config.decision_threshold - base_threshold) / 0.5
    elif isinstance(config, NormalizationUpdate):
        std = ref_std(config.feature)
        change = (
            abs(config.new_mean - ref_mean(config.feature)) / std
            + abs(math.log(config.new_std / std))
        )
        magnitude = 1.0 - math.exp(-change / 2.0)
    elif isinstance(config, OutlierRemoval):
        magnitude = math.exp(-(config.z_score_cutoff - 1.0) / 2.0)
    elif isinstance(config, ModelUpdate):
        magnitude = math.tanh(sum(abs(d) for d in config.parameter_deltas.values()))
    else:
        raise InvalidConfigurationError(f"Unsupported configuration: {type(config).__name__}")
    return float(min(max(magnitude, 0.0), 1.0))


def make_predict_fn(
    score_fn: Callable[[np.ndarray], np.ndarray],
    state: TransformState
) -> Callable:
    """
    Build a predict_fn(inputs, configuration_or_None) around a scoring callable.

    The returned function transforms raw inputs with state (patched by the
    configuration when one is given), scores them and applies the state's
    decision threshold.
    """
    def predict_fn(inputs, configuration: Optional[PatchConfiguration] = None) -> np.ndarray:
        active = state.with_configuration(configuration) if configuration is not None else state
        scores = np.asarray(score_fn(active.transform(inputs)), dtype=float)
        return (scores >= active.decision_threshold).astype(int)

    return predict_fn


class LiveStateRegistry:
    """
    Thread-safe registry of the live transform state of each model.
    """

    def __init__(self):
        self._states: Dict[str, TransformState] = {}
        self._lock = threading.Lock()

    def register(self, model_id: str, state: TransformState) -> None:
        with self._lock:
            self._states[model_id] = state
        logger.info("live_state_registered", model_id=model_id, n_features=len(state.feature_names))

    def get(self, model_id: str) -> TransformState:
        with self._lock:
            try:
                return self._states[model_id]
            except KeyError:
                raise PatchApplicationError(
                    f"No live state registered for model '{model_id}'",
                    details={"model_id": model_id}
                )

    def set(self, model_id: str, state: TransformState) -> None:
        with self._lock:
            self._states[model_id] = state

    def __contains__(self, model_id: str) -> bool:
        with self._lock:
            return model_id in self._states

    def serialize(self, model_id: str) -> bytes:
        return self.get(model_id).to_bytes()

    def restore(self, model_id: str, payload: bytes) -> TransformState:
        """Replace the live state with a decoded snapshot payload."""
        state = TransformState.from_bytes(payload)
        self.set(model_id, state)
        return state
