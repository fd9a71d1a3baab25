"""
End-to-end test of detect, synthesize, validate, apply and rollback over a
SQL-backed store.
"""

import pytest

from drift_patch.config import DriftConfig
from drift_patch.models import DriftType, PatchStatus, compute_feature_stats
from drift_patch.patching import (
    LiveStateRegistry,
    ModelLockRegistry,
    PatchLifecycleEngine,
    PatchSynthesizer,
    PatchValidator,
)
from drift_patch.pipelines import select_best_patch
from drift_patch.storage import SqlPatchStore

MODEL_ID = "fraud-model"


@pytest.fixture
def sql_engine(base_state):
    live_states = LiveStateRegistry()
    live_states.register(MODEL_ID, base_state)
    return PatchLifecycleEngine(SqlPatchStore(database_url="sqlite://"), live_states, ModelLockRegistry())


@pytest.mark.integration
@pytest.mark.database
class TestEndToEnd:
    """Full patch lifecycle against the SQL store."""

    def test_concept_drift_lifecycle(
        self, sql_engine, reference_matrix, concept_current, feature_names, predict_fn
    ):
        store = sql_engine.store
        live_states = sql_engine.live_states
        original = live_states.serialize(MODEL_ID)

        drift_result = sql_engine.run_detection(
            MODEL_ID, reference_matrix, concept_current, feature_names, DriftConfig()
        )
        assert drift_result.drift_type == DriftType.CONCEPT
        assert store.load(drift_result.id) == drift_result

        candidates = PatchSynthesizer().synthesize(
            drift_result,
            reference_stats=compute_feature_stats(reference_matrix, feature_names),
            current_stats=compute_feature_stats(concept_current, feature_names),
        )
        assert [c.patch_type.value for c in candidates] == ["feature_reweighting", "model_update"]

        validator = PatchValidator(
            reference_matrix,
            concept_current,
            feature_names,
            base_state=live_states.get(MODEL_ID),
        )
        inputs = concept_current[:200]
        labels = predict_fn(inputs, None)
        validated = []
        for candidate in candidates:
            store.save(candidate)
            validated.append(sql_engine.validate(
                candidate, validator, inputs, labels, predict_fn, drift_result.drift_score
            ))

        for patch_ in validated:
            assert patch_.status in (PatchStatus.VALIDATED, PatchStatus.FAILED)
            assert store.load(patch_.id) == patch_

        best = select_best_patch(validated)
        assert best is not None

        applied = sql_engine.apply(best)
        snapshot = store.latest_snapshot(applied.id)
        assert snapshot.pre_apply_state == original
        assert snapshot.post_apply_state == live_states.serialize(MODEL_ID)
        assert store.load(applied.id).status == PatchStatus.APPLIED

        rolled_back = sql_engine.rollback(applied)

        assert rolled_back.status == PatchStatus.ROLLED_BACK
        assert live_states.serialize(MODEL_ID) == original
        assert store.load(applied.id).status == PatchStatus.ROLLED_BACK
