"""Unit tests for Statistical Tests utilities."""

import numpy as np
import pytest

from drift_patch.utils.statistical_tests import (
    coefficient_of_variation,
    compute_psi_score,
    ks_test_2sample,
    quantile_bin_edges,
    squash_score,
    wilson_interval,
)


@pytest.mark.unit
class TestStatisticalTests:
    """Test suite for statistical test utilities."""

    def test_ks_test_identical_samples(self):
        """Test KS test with identical samples."""
        np.random.seed(42)
        sample1 = np.random.normal(0, 1, 1000)
        sample2 = sample1.copy()

        statistic, p_value = ks_test_2sample(sample1, sample2)

        assert statistic == 0.0
        assert p_value == pytest.approx(1.0)

    def test_ks_test_different_samples(self):
        """Test KS test with different distributions."""
        np.random.seed(42)
        sample1 = np.random.normal(0, 1, 1000)
        sample2 = np.random.normal(5, 1, 1000)

        statistic, p_value = ks_test_2sample(sample1, sample2)

        assert 0 < statistic <= 1
        assert p_value < 0.05

    def test_compute_psi_identical(self):
        """PSI of a sample against itself is exactly zero."""
        np.random.seed(42)
        baseline = np.random.normal(0, 1, 1000)

        assert compute_psi_score(baseline.copy(), baseline) == 0.0

    def test_compute_psi_no_drift(self):
        """Test PSI computation with no drift."""
        np.random.seed(42)
        baseline = np.random.normal(0, 1, 1000)
        np.random.seed(43)
        current = np.random.normal(0, 1, 1000)

        psi = compute_psi_score(current, baseline, bins=10)

        assert psi >= 0
        assert psi < 0.1

    def test_compute_psi_with_drift(self):
        """Test PSI computation with drift."""
        np.random.seed(42)
        baseline = np.random.normal(0, 1, 1000)
        current = np.random.normal(2, 1, 1000)

        psi = compute_psi_score(current, baseline, bins=10)

        assert psi > 0.25

    def test_compute_psi_constant_feature(self):
        """Collapsed bins on a constant feature do not produce NaN."""
        baseline = np.ones(500)
        current = np.ones(300)

        psi = compute_psi_score(current, baseline)

        assert psi == 0.0

    def test_quantile_bin_edges_deduplicated(self):
        edges = quantile_bin_edges(np.array([0.0] * 90 + [1.0] * 10), bins=10)

        assert len(edges) < 9
        assert np.all(np.diff(edges) > 0)

    def test_squash_score_bounds(self):
        assert squash_score(0.0) == 0.0
        assert squash_score(-1.0) == 0.0
        assert 0 < squash_score(0.5) < squash_score(2.0) < 1.0

    def test_coefficient_of_variation(self):
        assert coefficient_of_variation(np.array([])) == 0.0
        assert coefficient_of_variation(np.array([0.0, 0.0])) == 0.0
        assert coefficient_of_variation(np.array([2.0, 2.0, 2.0])) == 0.0
        assert coefficient_of_variation(np.array([1.0, 3.0])) == pytest.approx(0.5)

    def test_wilson_interval_contains_proportion(self):
        lower, upper = wilson_interval(0.9, 100)

        assert 0.0 <= lower < 0.9 < upper <= 1.0

    def test_wilson_interval_narrows_with_samples(self):
        small = wilson_interval(0.8, 20)
        large = wilson_interval(0.8, 2000)

        assert (large[1] - large[0]) < (small[1] - small[0])

    def test_wilson_interval_edge_cases(self):
        assert wilson_interval(0.5, 0) == (0.0, 0.0)
        lower, upper = wilson_interval(1.0, 10)
        assert lower < 1.0
        assert upper <= 1.0
