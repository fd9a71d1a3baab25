"""Unit tests for settings and explicit configuration objects."""

import pytest

from drift_patch.config import DriftConfig, SafetyWeights, Settings, ValidationConfig
from drift_patch.utils import InvalidConfigurationError


@pytest.mark.unit
class TestSettings:

    def test_defaults(self):
        config = DriftConfig()

        assert config.psi_threshold == 0.2
        assert config.ks_threshold == 0.1
        assert config.p_value_threshold == 0.05
        assert config.aggregate_threshold == 0.3
        assert config.num_bins == 10
        assert config.psi_epsilon == 1e-4

    def test_validation_defaults(self):
        config = ValidationConfig()

        assert config.safety_floor == 0.25
        assert config.drift_reduction_floor == 0.05
        assert config.fast_track_sample_ceiling == 30
        assert config.fast_track_safety_floor == 0.15
        assert config.reject_safety_floor == 0.10
        assert config.safety_weights.total == pytest.approx(1.0)

    def test_settings_build_configs(self):
        settings = Settings(psi_threshold=0.3, aggregate_drift_threshold=0.5, safety_floor=0.4)

        assert settings.drift_config().psi_threshold == 0.3
        assert settings.drift_config().aggregate_threshold == 0.5
        assert settings.validation_config().safety_floor == 0.4

    def test_negative_safety_weight_rejected(self):
        with pytest.raises(InvalidConfigurationError):
            SafetyWeights(magnitude=-0.1)

    def test_all_zero_safety_weights_rejected(self):
        with pytest.raises(InvalidConfigurationError):
            SafetyWeights(0.0, 0.0, 0.0)

    @pytest.mark.parametrize(
        "kwargs",
        [{"num_bins": 1}, {"psi_epsilon": 0.0}, {"ks_threshold": 1.5}, {"feature_weights": {"a": -1.0}}],
    )
    def test_invalid_drift_config_rejected(self, kwargs):
        with pytest.raises(InvalidConfigurationError):
            DriftConfig(**kwargs)
