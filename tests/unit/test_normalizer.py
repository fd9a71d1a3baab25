"""Unit tests for DistributionNormalizer."""

import numpy as np
import pandas as pd
import pytest

from drift_patch.detection import DistributionNormalizer
from drift_patch.utils import InsufficientDataError


@pytest.mark.unit
class TestDistributionNormalizer:
    """Test suite for reference-anchored normalization."""

    def test_reference_is_standardized(self, reference_matrix, identical_current):
        normalizer = DistributionNormalizer()

        norm_ref, norm_cur = normalizer.normalize(reference_matrix, identical_current)

        np.testing.assert_allclose(norm_ref.mean(axis=0), 0.0, atol=1e-9)
        np.testing.assert_allclose(norm_ref.std(axis=0), 1.0, atol=1e-9)
        np.testing.assert_allclose(norm_ref, norm_cur)

    def test_shift_is_preserved(self, reference_matrix, prior_current):
        """Current data is standardized with reference statistics, not its own."""
        normalizer = DistributionNormalizer()

        _, norm_cur = normalizer.normalize(reference_matrix, prior_current)

        assert norm_cur[:, 3].mean() == pytest.approx(5.0, abs=1e-9)
        assert norm_cur[:, 0].mean() == pytest.approx(0.0, abs=1e-9)

    def test_reference_statistics_exposed(self, reference_matrix, identical_current):
        normalizer = DistributionNormalizer()
        normalizer.normalize(reference_matrix, identical_current)

        np.testing.assert_allclose(normalizer.reference_means, reference_matrix.mean(axis=0))
        np.testing.assert_allclose(normalizer.reference_stds, reference_matrix.std(axis=0))

    def test_constant_feature_std_floor(self):
        reference = np.column_stack([np.ones(50), np.arange(50, dtype=float)])
        current = np.column_stack([np.full(20, 2.0), np.arange(20, dtype=float)])

        norm_ref, norm_cur = DistributionNormalizer().normalize(reference, current)

        assert np.all(np.isfinite(norm_ref))
        assert np.all(np.isfinite(norm_cur))
        assert np.all(norm_ref[:, 0] == 0.0)

    def test_accepts_dataframes(self, reference_matrix, identical_current):
        columns = [f"f{i}" for i in range(reference_matrix.shape[1])]
        reference = pd.DataFrame(reference_matrix, columns=columns)
        current = pd.DataFrame(identical_current, columns=columns)

        norm_ref, norm_cur = DistributionNormalizer().normalize(reference, current)

        assert norm_ref.shape == reference_matrix.shape
        assert norm_cur.shape == identical_current.shape

    def test_empty_reference_raises(self):
        with pytest.raises(InsufficientDataError) as exc_info:
            DistributionNormalizer().normalize(np.empty((0, 3)), np.ones((5, 3)))

        assert exc_info.value.error_code == "DP001"

    def test_empty_current_raises(self):
        with pytest.raises(InsufficientDataError):
            DistributionNormalizer().normalize(np.ones((5, 3)), np.empty((0, 3)))

    def test_feature_count_mismatch_raises(self):
        with pytest.raises(InsufficientDataError):
            DistributionNormalizer().normalize(np.ones((5, 3)), np.ones((5, 4)))

    def test_one_dimensional_input_raises(self):
        with pytest.raises(InsufficientDataError):
            DistributionNormalizer().normalize(np.ones(5), np.ones(5))

    def test_transform_before_fit_raises(self):
        with pytest.raises(InsufficientDataError):
            DistributionNormalizer().transform(np.ones((5, 3)))
