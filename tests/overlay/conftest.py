"""Fixtures for overlay tests.

Provides a trained two-class model and a minimal overlay subclass whose
tiles are cheap and whose computation can be held open by the test.
"""

import pytest

from pixtrain.imaging.features import build_default_operator
from pixtrain.imaging.resolution import default_resolutions
from pixtrain.overlay.cache import TileCache
from pixtrain.training.classifiers import StatModel
from pixtrain.training.model import CLASSIFICATION
from pixtrain.training.preprocessing import FeatureNormalization
from pixtrain.training.samples import Skip, assemble
from pixtrain.training.trainer import TrainingOptions, train

from helpers.overlays import ConstantOverlay


@pytest.fixture
def cache():
    return TileCache(max_tiles=64)


@pytest.fixture
def constant_overlay(image_source, cache):
    overlay = ConstantOverlay(image_source, cache, tile_size=32, max_workers=2)
    yield overlay
    overlay.gate.set()
    overlay.stop()


def _model(hierarchy, image_source, output_type=CLASSIFICATION):
    operator = build_default_operator(image_source.channel_names, [1.0], ["gaussian"], default_resolutions()[0])
    table = assemble(hierarchy, image_source, operator, Skip(1.0))
    model, _ = train(
        table, StatModel("rtrees", {"n_estimators": 5}), TrainingOptions(rng_seed=1),
        FeatureNormalization(), output_type=output_type, feature_operator=operator,
    )
    return model


@pytest.fixture
def trained_model(hierarchy, image_source):
    """Stroma (dark, index 0) vs Tumor (bright, index 1) at full resolution."""
    return _model(hierarchy, image_source)


@pytest.fixture
def probability_model(hierarchy, image_source):
    return _model(hierarchy, image_source, "probability")
