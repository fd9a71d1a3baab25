"""
Integration tests for the drift patch pipeline.
"""

import numpy as np
import pytest

from drift_patch.models import Patch, PatchStatus, ThresholdTuning, ValidationResult
from drift_patch.patching import (
    LiveStateRegistry,
    ModelLockRegistry,
    PatchEvent,
    PatchLifecycleEngine,
    advance,
)
from drift_patch.pipelines import run_patch_pipeline, select_best_patch
from drift_patch.storage import InMemoryPatchStore
from drift_patch.utils import CancellationToken

MODEL_ID = "fraud-model"


def _run(engine, reference, current, feature_names, predict_fn, **kwargs):
    inputs = current[:200]
    return run_patch_pipeline(
        model_id=MODEL_ID,
        reference=reference,
        current=current,
        feature_names=feature_names,
        validation_inputs=inputs,
        validation_labels=predict_fn(inputs, None),
        predict_fn=predict_fn,
        engine=engine,
        **kwargs,
    )


@pytest.mark.integration
class TestPatchPipeline:
    """Test suite for run_patch_pipeline."""

    def test_no_drift(self, engine, store, reference_matrix, identical_current, feature_names, predict_fn):
        result = _run(engine, reference_matrix, identical_current, feature_names, predict_fn)

        assert result["status"] == "no_drift"
        assert result["patches"] == []
        assert result["best_patch_id"] is None
        assert len(store) == 1

    def test_prior_drift_without_apply(
        self, engine, store, live_states, reference_matrix, prior_current, feature_names, predict_fn
    ):
        before = live_states.serialize(MODEL_ID)

        result = _run(engine, reference_matrix, prior_current, feature_names, predict_fn)

        assert result["status"] == "success"
        assert result["drift_result"]["drift_type"] == "prior"
        assert {p["patch_type"] for p in result["patches"]} == {
            "threshold_tuning",
            "feature_reweighting",
        }
        assert all(p["status"] in ("validated", "failed") for p in result["patches"])
        assert result["best_patch_id"] is not None
        assert result["applied_patch_id"] is None
        assert live_states.serialize(MODEL_ID) == before
        for p in result["patches"]:
            assert store.load(p["id"]).status.value == p["status"]

    def test_covariate_drift_auto_apply(
        self, engine, store, live_states, reference_matrix, covariate_current, feature_names, predict_fn
    ):
        before = live_states.serialize(MODEL_ID)

        result = _run(
            engine, reference_matrix, covariate_current, feature_names, predict_fn, auto_apply=True
        )

        assert result["status"] == "success"
        assert result["drift_result"]["drift_type"] == "covariate"
        assert result["applied_patch_id"] == result["best_patch_id"]
        applied = store.load(result["applied_patch_id"])
        assert applied.status == PatchStatus.APPLIED
        assert store.latest_snapshot(applied.id).pre_apply_state == before
        assert live_states.serialize(MODEL_ID) != before

        engine.rollback(applied)

        assert live_states.serialize(MODEL_ID) == before

    def test_model_busy(self, engine, reference_matrix, prior_current, feature_names, predict_fn):
        with engine.locks.hold(MODEL_ID, "apply"):
            result = _run(engine, reference_matrix, prior_current, feature_names, predict_fn)

        assert result["status"] == "model_busy"

    def test_cancelled(self, engine, reference_matrix, prior_current, feature_names, predict_fn):
        token = CancellationToken()
        token.cancel()

        result = _run(
            engine, reference_matrix, prior_current, feature_names, predict_fn, cancel_token=token
        )

        assert result["status"] == "cancelled"
        assert not engine.locks.is_locked(MODEL_ID)

    def test_empty_current_fails(self, engine, reference_matrix, feature_names, predict_fn):
        result = run_patch_pipeline(
            model_id=MODEL_ID,
            reference=reference_matrix,
            current=np.empty((0, reference_matrix.shape[1])),
            feature_names=feature_names,
            validation_inputs=reference_matrix[:10],
            validation_labels=np.zeros(10, dtype=int),
            predict_fn=predict_fn,
            engine=engine,
        )

        assert result["status"] == "failed"
        assert result["error_code"] == "DP001"

    def test_unregistered_model_uses_reference_state(
        self, reference_matrix, prior_current, feature_names, predict_fn
    ):
        engine = PatchLifecycleEngine(InMemoryPatchStore(), LiveStateRegistry(), ModelLockRegistry())

        result = _run(engine, reference_matrix, prior_current, feature_names, predict_fn)

        assert result["status"] == "success"
        assert result["applied_patch_id"] is None



@pytest.mark.integration
class TestSelectBestPatch:

    @staticmethod
    def _scored(safety, before, after, event=PatchEvent.VALIDATION_PASSED):
        created = Patch(model_id=MODEL_ID, drift_result_id="dr", configuration=ThresholdTuning(0.6))
        validation = ValidationResult(
            is_valid=event == PatchEvent.VALIDATION_PASSED,
            accuracy=1.0,
            precision=1.0,
            recall=1.0,
            f1=1.0,
            safety_score=safety,
            drift_score_before=before,
            drift_score_after=after,
        )
        return advance(created, event, safety_score=safety, validation_result=validation)

    def test_highest_safety_wins(self):
        low = self._scored(0.4, 0.5, 0.1)
        high = self._scored(0.8, 0.5, 0.4)

        assert select_best_patch([low, high]) is high

    def test_tie_broken_by_drift_reduction(self):
        small = self._scored(0.6, 0.5, 0.4)
        large = self._scored(0.6, 0.5, 0.2)

        assert select_best_patch([small, large]) is large

    def test_failed_patches_ignored(self):
        failed = self._scored(0.9, 0.5, 0.0, PatchEvent.VALIDATION_FAILED)

        assert select_best_patch([failed]) is None
        assert select_best_patch([]) is None
