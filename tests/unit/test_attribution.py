"""Unit tests for AttributionRanker."""

import pytest

from drift_patch.detection import AttributionRanker, detect_drift
from drift_patch.models import DriftResult, DriftType, FeatureDrift


def _feature(name, psi):
    return FeatureDrift(
        feature_name=name,
        psi_score=psi,
        ks_statistic=0.0,
        p_value=1.0,
        mean_shift=0.0,
        std_shift=0.0,
        is_drifted=psi > 0.2,
    )


@pytest.mark.unit
class TestAttributionRanker:
    """Test suite for AttributionRanker."""

    def test_contributions_are_psi_shares(self):
        features = [_feature("a", 1.0), _feature("b", 3.0), _feature("c", 0.0)]

        ordered, entries = AttributionRanker().rank(features)

        assert [fd.feature_name for fd in ordered] == ["b", "a", "c"]
        assert [e.feature_name for e in entries] == ["b", "a", "c"]
        assert [e.contribution for e in entries] == pytest.approx([0.75, 0.25, 0.0])
        assert sum(e.contribution for e in entries) <= 1.0 + 1e-12

    def test_ties_broken_by_name(self):
        features = [_feature("zeta", 1.0), _feature("alpha", 1.0), _feature("mid", 2.0)]

        ordered, _ = AttributionRanker().rank(features)

        assert [fd.feature_name for fd in ordered] == ["mid", "alpha", "zeta"]

    def test_all_zero_psi(self):
        features = [_feature("b", 0.0), _feature("a", 0.0)]

        ordered, entries = AttributionRanker().rank(features)

        assert [e.contribution for e in entries] == [0.0, 0.0]
        assert [fd.feature_name for fd in ordered] == ["a", "b"]

    def test_empty_input(self):
        assert AttributionRanker().rank([]) == ([], [])

    def test_rank_does_not_mutate_input(self):
        features = [_feature("a", 1.0), _feature("b", 3.0)]

        AttributionRanker().rank(features)

        assert [fd.feature_name for fd in features] == ["a", "b"]

    def test_rank_result_returns_new_result(self):
        result = DriftResult(
            model_id="m",
            drift_score=0.5,
            drift_type=DriftType.CONCEPT,
            feature_drifts=(_feature("a", 1.0), _feature("b", 3.0)),
            is_drift_detected=True,
            threshold=0.3,
        )

        ranked = AttributionRanker().rank_result(result)

        assert ranked is not result
        assert ranked.id == result.id
        assert ranked.timestamp == result.timestamp
        assert [fd.feature_name for fd in ranked.feature_drifts] == ["b", "a"]
        assert ranked.contribution_of("b") == pytest.approx(0.75)
        assert result.attribution == ()

    def test_shifted_feature_has_strictly_largest_contribution(
        self, reference_matrix, prior_current, feature_names
    ):
        result = AttributionRanker().rank_result(
            detect_drift(reference_matrix, prior_current, feature_names)
        )

        top, rest = result.attribution[0], result.attribution[1:]
        assert top.feature_name == "f3"
        assert all(top.contribution > entry.contribution for entry in rest)
