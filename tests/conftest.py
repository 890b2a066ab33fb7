"""Root-level pytest fixtures for the pixtrain test suite.

Provides shared configuration fixtures following the Pydantic-based
architecture, plus a small synthetic image with two annotated regions.
All tests must use these fixtures instead of creating raw dict configs.
"""

import pytest
from pathlib import Path
import tempfile
import shutil

from pixtrain.schemas import ParamConfig, UserConfig, resolve_config
from pixtrain.setup_directories import setup_output_directories

from helpers.synthetic import two_region_image, two_region_hierarchy


# =============================================================================
# Configuration Fixtures (Pydantic-based)
# =============================================================================

@pytest.fixture
def param_config():
    """Expert configuration with all defaults.

    Use this as the base for all test configs. Override specific values
    using make_config or by creating custom UserConfig instances.
    """
    return ParamConfig()


@pytest.fixture
def internal_config(param_config):
    """Fully validated runtime configuration (no overrides).

    Use this when tests don't care about specific config values and just
    need a valid InternalConfig to pass to constructors.
    """
    return resolve_config(param_config, None, None)


@pytest.fixture
def make_config(param_config):
    """Factory fixture for creating custom test configs.

    Returns a callable that accepts UserConfig-compatible kwargs.

    Examples
    --------
    >>> def test_knn(make_config):
    ...     config = make_config(CLASSIFIER="knearest", RESOLUTION="Full")
    ...     assert config.classifier.kind == "knearest"
    """
    def _make(**user_overrides):
        """Create InternalConfig with user overrides."""
        if user_overrides:
            user = UserConfig(**user_overrides)
            return resolve_config(param_config, user, None)
        else:
            return resolve_config(param_config, None, None)

    return _make


@pytest.fixture
def session_config(make_config):
    """Small, fast session: full resolution, one smoothing scale, a 10-tree forest."""
    return make_config(
        RESOLUTION="Full",
        SIGMAS=[1.0],
        FEATURES=["gaussian"],
        CLASSIFIER="rtrees",
        overlay={"tile_size": 32, "max_workers": 2},
        classifier_config={"params": {"n_estimators": 10}},
    )


# =============================================================================
# Image Fixtures
# =============================================================================

@pytest.fixture
def image_source():
    """64 x 64 RGB image: dark left half, bright right half."""
    return two_region_image()


@pytest.fixture
def hierarchy():
    """Stroma rectangle on the dark half, Tumor rectangle on the bright half."""
    return two_region_hierarchy()


# =============================================================================
# Directory Fixtures
# =============================================================================

@pytest.fixture
def temp_dir():
    """Temporary directory that is cleaned up after test."""
    d = tempfile.mkdtemp()
    yield Path(d)
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture
def output_dirs(temp_dir):
    """Standard pixtrain output directory structure.

    Returns dict with keys: base, models, reports, logs
    All directories are created and cleaned up automatically.
    """
    return setup_output_directories(temp_dir)
