"""
Test configuration and fixtures for drift patch tests.

This module provides pytest fixtures and configuration for all test modules.
"""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from drift_patch.config import DriftConfig, ValidationConfig
from drift_patch.models import compute_feature_stats
from drift_patch.patching import (
    LiveStateRegistry,
    ModelLockRegistry,
    PatchLifecycleEngine,
    TransformState,
    make_predict_fn,
)
from drift_patch.storage import InMemoryPatchStore

N_SAMPLES = 1000
N_FEATURES = 10
MODEL_ID = "fraud-model"


def shift_features(reference: np.ndarray, shifts: dict) -> np.ndarray:
    """Copy of reference with columns shifted by a multiple of their std."""
    current = reference.copy()
    for idx, sigmas in shifts.items():
        current[:, idx] = reference[:, idx] + sigmas * reference[:, idx].std()
    return current


def linear_score(matrix: np.ndarray) -> np.ndarray:
    """Logistic score of the first two transformed features."""
    return 1.0 / (1.0 + np.exp(-(matrix[:, 0] + matrix[:, 1])))


@pytest.fixture
def feature_names():
    return [f"f{i}" for i in range(N_FEATURES)]


@pytest.fixture
def reference_matrix():
    """1000 samples of N(0, 1) per feature."""
    np.random.seed(42)
    return np.random.normal(0, 1, (N_SAMPLES, N_FEATURES))


@pytest.fixture
def identical_current(reference_matrix):
    return reference_matrix.copy()


@pytest.fixture
def prior_current(reference_matrix):
    """Feature 3 shifted by +5 sigma, everything else identical."""
    return shift_features(reference_matrix, {3: 5.0})


@pytest.fixture
def concept_current(reference_matrix):
    """30% of features shifted by widely varying magnitudes."""
    return shift_features(reference_matrix, {1: 0.5, 4: 2.0, 7: 5.0})


@pytest.fixture
def covariate_current(reference_matrix):
    """80% of features shifted by the same magnitude."""
    return shift_features(reference_matrix, {i: 1.0 for i in range(8)})


@pytest.fixture
def drift_config():
    return DriftConfig()


@pytest.fixture
def validation_config():
    return ValidationConfig()


@pytest.fixture
def reference_stats(reference_matrix, feature_names):
    return compute_feature_stats(reference_matrix, feature_names)


@pytest.fixture
def base_state(feature_names, reference_stats):
    return TransformState.from_reference(feature_names, reference_stats)


@pytest.fixture
def predict_fn(base_state):
    return make_predict_fn(linear_score, base_state)


@pytest.fixture
def store():
    return InMemoryPatchStore()


@pytest.fixture
def live_states(base_state):
    registry = LiveStateRegistry()
    registry.register(MODEL_ID, base_state)
    return registry


@pytest.fixture
def engine(store, live_states):
    return PatchLifecycleEngine(store, live_states, ModelLockRegistry())


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "database: mark test as requiring database")
