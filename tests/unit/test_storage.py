"""Unit tests for the patch stores."""

from dataclasses import replace

import pytest

from drift_patch.models import (
    AttributionEntry,
    DriftResult,
    DriftType,
    FeatureDrift,
    FeatureReweighting,
    Patch,
    PatchSnapshot,
    PatchStatus,
    ValidationResult,
)
from drift_patch.storage import InMemoryPatchStore, SqlPatchStore, record_from_dict
from drift_patch.utils import StorageException


@pytest.fixture(params=["memory", "sqlite"])
def patch_store(request):
    if request.param == "memory":
        return InMemoryPatchStore()
    return SqlPatchStore(database_url="sqlite://")


@pytest.fixture
def drift_result():
    return DriftResult(
        model_id="m",
        drift_score=0.42,
        drift_type=DriftType.PRIOR,
        feature_drifts=(
            FeatureDrift("f0", 1.5, 0.6, 1e-12, 2.0, 0.1, True),
            FeatureDrift("f1", 0.01, 0.02, 0.9, 0.0, 0.0, False),
        ),
        is_drift_detected=True,
        threshold=0.3,
        drift_ratio=0.5,
        drift_consistency=0.0,
        attribution=(AttributionEntry("f0", 0.99), AttributionEntry("f1", 0.01)),
    )


@pytest.fixture
def stored_patch(drift_result):
    return Patch(
        model_id="m",
        drift_result_id=drift_result.id,
        configuration=FeatureReweighting({"f0": 0.5}),
        safety_score=0.8,
        validation_result=ValidationResult(
            is_valid=True,
            accuracy=0.95,
            precision=0.9,
            recall=0.8,
            f1=0.85,
            safety_score=0.8,
            drift_score_before=0.42,
            drift_score_after=0.1,
            errors=("warning: accepted below standard gate",),
            sample_count=200,
        ),
    )


@pytest.mark.unit
class TestPatchStores:
    """Behaviour shared by every PatchStore implementation."""

    def test_save_and_load_drift_result(self, patch_store, drift_result):
        patch_store.save(drift_result)

        assert patch_store.load(drift_result.id) == drift_result

    def test_save_and_load_patch(self, patch_store, stored_patch):
        patch_store.save(stored_patch)

        assert patch_store.load(stored_patch.id) == stored_patch

    def test_save_replaces_by_id(self, patch_store, stored_patch):
        patch_store.save(stored_patch)
        failed = replace(stored_patch, status=PatchStatus.FAILED)

        patch_store.save(failed)

        assert patch_store.load(stored_patch.id).status == PatchStatus.FAILED

    def test_load_missing_returns_none(self, patch_store):
        assert patch_store.load("missing") is None

    def test_snapshot_round_trip(self, patch_store):
        snapshot = PatchSnapshot(
            patch_id="p", model_id="m", pre_apply_state=b"\x00\x01pre", post_apply_state=b"post"
        )

        patch_store.save(snapshot)

        assert patch_store.load(snapshot.id) == snapshot
        assert patch_store.latest_snapshot("p") == snapshot

    def test_latest_snapshot_is_most_recently_saved(self, patch_store):
        first = PatchSnapshot(patch_id="p", model_id="m", pre_apply_state=b"first")
        second = PatchSnapshot(patch_id="p", model_id="m", pre_apply_state=b"second")
        patch_store.save(first)
        patch_store.save(second)

        assert patch_store.latest_snapshot("p").pre_apply_state == b"second"
        assert patch_store.latest_snapshot("other") is None

    def test_snapshot_update_keeps_identity(self, patch_store):
        snapshot = PatchSnapshot(patch_id="p", model_id="m", pre_apply_state=b"pre")
        patch_store.save(snapshot)

        patch_store.save(replace(snapshot, post_apply_state=b"post"))

        latest = patch_store.latest_snapshot("p")
        assert latest.id == snapshot.id
        assert latest.post_apply_state == b"post"

    def test_delete(self, patch_store, stored_patch):
        snapshot = PatchSnapshot(patch_id=stored_patch.id, model_id="m", pre_apply_state=b"pre")
        patch_store.save(stored_patch)
        patch_store.save(snapshot)

        assert patch_store.delete(snapshot.id) is True
        assert patch_store.latest_snapshot(stored_patch.id) is None
        assert patch_store.delete(stored_patch.id) is True
        assert patch_store.load(stored_patch.id) is None
        assert patch_store.delete("missing") is False


@pytest.mark.unit
class TestRecordFromDict:

    def test_unknown_record_type(self):
        with pytest.raises(StorageException) as exc_info:
            record_from_dict({"record_type": "model"})

        assert exc_info.value.error_code == "DP008"

    def test_dispatch_on_record_type(self, drift_result, stored_patch):
        assert record_from_dict(drift_result.to_dict()) == drift_result
        assert record_from_dict(stored_patch.to_dict()) == stored_patch


@pytest.mark.database
class TestSqlPatchStore:
    """SQL-specific behaviour."""

    def test_file_database_persists(self, tmp_path, drift_result):
        url = f"sqlite:///{tmp_path / 'patches.db'}"
        SqlPatchStore(database_url=url).save(drift_result)

        reopened = SqlPatchStore(database_url=url)

        assert reopened.load(drift_result.id) == drift_result

    def test_in_memory_store_is_shared_across_sessions(self, stored_patch):
        store = SqlPatchStore(database_url="sqlite://")

        store.save(stored_patch)

        assert store.load(stored_patch.id) == stored_patch
