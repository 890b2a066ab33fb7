"""Test config resolution and validation with Pydantic."""

import pytest
from pydantic import ValidationError

from pixtrain.schemas import ParamConfig, UserConfig, CLIConfig, InternalConfig
from pixtrain.schemas.resolve import resolve_config, deep_merge

pytestmark = pytest.mark.unit


class TestConfigResolution:
    """Test resolve_config() precedence and merging."""

    def test_resolve_config_all_defaults(self):
        """Resolving with no user/CLI overrides uses all ParamConfig defaults."""
        config = resolve_config(ParamConfig(), None, None)

        assert isinstance(config, InternalConfig)
        assert config.resolution.name == "Moderate"
        assert config.classifier.kind == "rtrees"
        assert config.training.max_samples == 100000
        assert config.training.rng_seed == 100
        assert config.boundary.strategy == "skip"
        assert config.overlay.live_prediction is False

    def test_user_config_overrides_param_config(self):
        """UserConfig values override ParamConfig defaults."""
        config = resolve_config(ParamConfig(), UserConfig(MAX_SAMPLES=500), None)

        assert config.training.max_samples == 500
        # Untouched siblings keep their defaults
        assert config.training.rng_seed == 100

    def test_cli_overrides_user(self):
        """Full precedence: CLI > User > Param."""
        user = UserConfig(CLASSIFIER="knearest", MAX_SAMPLES=500)
        cli = CLIConfig(classifier="ann_mlp")
        config = resolve_config(ParamConfig(), user, cli)

        assert config.classifier.kind == "ann_mlp"
        assert config.training.max_samples == 500

    def test_dicts_are_accepted(self):
        """Plain dicts are validated into the schema classes."""
        config = resolve_config({}, {"CLASSIFIER": "majority"}, {"rng_seed": 7})

        assert config.classifier.kind == "majority"
        assert config.training.rng_seed == 7

    def test_nested_user_section_overrides_flat_alias(self):
        """A nested section is applied after the flat aliases of the same section."""
        user = UserConfig(MAX_SAMPLES=500, training={"max_samples": 800})
        config = resolve_config(ParamConfig(), user, None)

        assert config.training.max_samples == 800

    def test_internal_config_is_frozen(self):
        """Runtime config cannot be mutated after resolution."""
        config = resolve_config(ParamConfig(), None, None)

        with pytest.raises(ValidationError):
            config.training.max_samples = 10


class TestMergedValidation:
    """Combinations that are only invalid once merged."""

    def test_classify_strategy_without_class_fails(self):
        with pytest.raises(ValidationError, match="class_name"):
            resolve_config(ParamConfig(), UserConfig(BOUNDARY_STRATEGY="classify"), None)

    def test_classify_strategy_with_class(self):
        user = UserConfig(BOUNDARY_STRATEGY="classify", BOUNDARY_CLASS="Stroma")
        config = resolve_config(ParamConfig(), user, None)

        assert config.boundary.strategy == "classify"
        assert config.boundary.class_name == "Stroma"

    def test_custom_resolution_needs_scale(self):
        with pytest.raises(ValidationError, match="Custom resolution"):
            resolve_config(ParamConfig(), UserConfig(RESOLUTION="Custom"), None)

    def test_cli_downsample_selects_custom(self):
        config = resolve_config(ParamConfig(), None, CLIConfig(downsample=3))

        assert config.resolution.name == "Custom"
        assert config.resolution.custom_downsample == 3.0

    def test_invalid_sigma_rejected(self):
        with pytest.raises(ValidationError, match="sigmas"):
            resolve_config(ParamConfig(), UserConfig(SIGMAS=[0.0]), None)

    def test_unknown_feature_rejected(self):
        with pytest.raises(ValidationError):
            resolve_config(ParamConfig(), UserConfig(FEATURES=["sobel"]), None)


class TestDeepMerge:

    def test_nested_dicts_merge(self):
        base = {"a": 1, "b": {"c": 2, "d": 3}}
        merged = deep_merge(base, {"b": {"d": 4, "e": 5}, "f": 6})

        assert merged == {"a": 1, "b": {"c": 2, "d": 4, "e": 5}, "f": 6}
        # Base untouched
        assert base == {"a": 1, "b": {"c": 2, "d": 3}}

    def test_later_overrides_win(self):
        assert deep_merge({"a": 1}, {"a": 2}, {"a": 3}) == {"a": 3}
