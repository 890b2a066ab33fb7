"""Tests for tile rendering and the cursor readout."""

import numpy as np
import pytest

from pixtrain.overlay.render import (
    render_classification,
    render_feature,
    render_probability,
    render_tile,
    results_string,
)

pytestmark = pytest.mark.overlay


def _colors(model):
    return [c.color for c in model.metadata.output_channels]


class TestRender:

    def test_classification_uses_class_colors(self, trained_model):
        stroma, tumor = _colors(trained_model)
        image = np.array([[0, 1]], dtype=np.uint8)

        rgba = render_classification(image, trained_model, opacity=0.5)

        assert rgba.shape == (1, 2, 4)
        assert rgba.dtype == np.uint8
        assert tuple(rgba[0, 0, :3]) == tuple(stroma)
        assert tuple(rgba[0, 1, :3]) == tuple(tumor)
        assert (rgba[..., 3] == 128).all()

    def test_probability_mixes_colors(self, probability_model):
        stroma, tumor = _colors(probability_model)
        image = np.array([[[1.0, 0.0], [0.5, 0.5]]], dtype=np.float32)

        rgba = render_probability(image, probability_model)

        assert tuple(rgba[0, 0, :3]) == tuple(stroma)
        expected = np.rint((np.array(stroma) + np.array(tumor)) / 2)
        np.testing.assert_allclose(rgba[0, 1, :3], expected, atol=1)
        assert (rgba[..., 3] == 255).all()

    def test_feature_display_range(self):
        image = np.array([[0.0, 5.0, 10.0, 20.0]], dtype=np.float32)

        rgba = render_feature(image, 0.0, 10.0)

        assert rgba.shape == (1, 4, 4)
        assert rgba[0, 0, 0] == 0
        assert rgba[0, 2, 0] == 255
        # Values above the range saturate
        assert rgba[0, 3, 0] == 255

    def test_feature_empty_range(self):
        rgba = render_feature(np.ones((2, 2), dtype=np.float32), 1.0, 1.0, opacity=0.0)

        assert (rgba[..., :3] == 0).all()
        assert (rgba[..., 3] == 0).all()

    def test_render_tile_dispatch(self, trained_model, probability_model):
        classes = render_tile(np.zeros((2, 2), dtype=np.uint8), trained_model)
        probs = render_tile(np.full((2, 2, 2), 0.5, dtype=np.float32), probability_model)

        assert classes.shape == probs.shape == (2, 2, 4)


class TestResultsString:

    def test_classification(self, trained_model, image_source):
        assert results_string(trained_model, image_source, 10, 30) == "Classification: Stroma"
        assert results_string(trained_model, image_source, 50, 30) == "Classification: Tumor"

    def test_probability(self, probability_model, image_source):
        text = results_string(probability_model, image_source, 50, 30)

        assert text.startswith("Prediction: Stroma: ")
        assert ", Tumor: " in text

    def test_outside_image(self, trained_model, image_source):
        assert results_string(trained_model, image_source, -1, 10) is None
        assert results_string(trained_model, image_source, 10, 64) is None

    def test_no_model(self, image_source):
        assert results_string(None, image_source, 10, 10) is None
