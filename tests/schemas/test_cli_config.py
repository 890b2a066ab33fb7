"""Tests for CLIConfig schema and conversion to internal overrides."""

import pytest
from pydantic import ValidationError

from pixtrain.schemas.cli import CLIConfig

pytestmark = pytest.mark.unit


def test_cli_to_internal_overrides_with_classifier():
    """Classifier kind is normalized to lowercase."""
    cli = CLIConfig(classifier=" KNearest ")
    overrides = cli.to_internal_overrides()
    assert overrides["classifier"]["kind"] == "knearest"


def test_cli_to_internal_overrides_with_log_level():
    """Test CLI config conversion with log_level override."""
    cli = CLIConfig(log_level="DEBUG")
    overrides = cli.to_internal_overrides()
    assert overrides["logging"]["level"] == "DEBUG"


def test_cli_to_internal_overrides_with_training_fields():
    cli = CLIConfig(max_samples=250, rng_seed=42)
    overrides = cli.to_internal_overrides()
    assert overrides["training"] == {"max_samples": 250, "rng_seed": 42}


def test_cli_to_internal_overrides_empty():
    """Test CLI config conversion with no overrides."""
    cli = CLIConfig()
    overrides = cli.to_internal_overrides()
    assert overrides == {}


def test_cli_config_accepts_base_dir():
    """Test that base_dir is accepted and in overrides."""
    cli = CLIConfig(base_dir="/path/to/output")
    assert cli.base_dir == "/path/to/output"
    overrides = cli.to_internal_overrides()
    assert overrides["output"]["base_dir"] == "/path/to/output"


def test_cli_named_resolution():
    cli = CLIConfig(resolution="High")
    assert cli.to_internal_overrides()["resolution"] == {"name": "High"}


def test_cli_downsample_implies_custom():
    """A bare downsample selects the Custom resolution."""
    cli = CLIConfig(downsample=6)
    assert cli.resolution == "Custom"
    assert cli.to_internal_overrides()["resolution"] == {"name": "Custom", "custom_downsample": 6.0}


def test_cli_downsample_keeps_explicit_resolution():
    cli = CLIConfig(resolution="Low", downsample=6)
    assert cli.resolution == "Low"


def test_cli_config_all_log_levels():
    """Test all valid log levels."""
    for level in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
        cli = CLIConfig(log_level=level)
        assert cli.to_internal_overrides()["logging"]["level"] == level


def test_cli_config_rejects_unknown_fields():
    with pytest.raises(ValidationError):
        CLIConfig(mode="realtime")


def test_cli_config_rejects_unknown_resolution():
    with pytest.raises(ValidationError):
        CLIConfig(resolution="Ultra")


def test_cli_config_rejects_negative_max_samples():
    with pytest.raises(ValidationError):
        CLIConfig(max_samples=-1)
