"""Turn overlay tiles into RGBA images and cursor readouts.

Rendering is presentation only: opacity and display ranges are applied
here and never influence what is cached.
"""

import logging
from typing import Optional

import matplotlib
import numpy as np

from pixtrain.imaging.tiles import TileSource
from pixtrain.training.model import PROBABILITY, TrainedModel

__all__ = [
    'render_classification',
    'render_probability',
    'render_feature',
    'render_tile',
    'results_string',
]

logger = logging.getLogger(__name__)


def _colors(model: TrainedModel) -> np.ndarray:
    return np.array([c.color for c in model.metadata.output_channels], dtype=np.float32)


def _alpha(shape, opacity: float) -> np.ndarray:
    return np.full(shape, np.uint8(round(255 * min(1.0, max(0.0, opacity)))), dtype=np.uint8)


def render_classification(image: np.ndarray, model: TrainedModel, opacity: float = 1.0) -> np.ndarray:
    """(H, W) class indices -> (H, W, 4) uint8 using each class's color."""
    colors = _colors(model).astype(np.uint8)
    rgb = colors[image]
    return np.dstack([rgb, _alpha(image.shape, opacity)])


def render_probability(image: np.ndarray, model: TrainedModel, opacity: float = 1.0) -> np.ndarray:
    """(H, W, K) probabilities -> (H, W, 4) uint8 by mixing class colors."""
    colors = _colors(model)
    rgb = np.tensordot(image, colors, axes=([2], [0]))
    rgb = np.clip(np.rint(rgb), 0, 255).astype(np.uint8)
    return np.dstack([rgb, _alpha(image.shape[:2], opacity)])


def render_feature(
    image: np.ndarray,
    display_min: float,
    display_max: float,
    cmap: str = "gray",
    opacity: float = 1.0,
) -> np.ndarray:
    """(H, W) feature values -> (H, W, 4) uint8 through a matplotlib colormap."""
    span = display_max - display_min
    scaled = (image - display_min) / span if span > 0 else np.zeros_like(image)
    rgba = matplotlib.colormaps[cmap](np.clip(scaled, 0, 1), bytes=True)
    rgba[..., 3] = _alpha(image.shape, opacity)
    return rgba


def render_tile(image: np.ndarray, model: TrainedModel, opacity: float = 1.0) -> np.ndarray:
    if model.channel_type == PROBABILITY:
        return render_probability(image, model, opacity)
    return render_classification(image, model, opacity)


def results_string(model: Optional[TrainedModel], source: TileSource, x: float, y: float) -> Optional[str]:
    """Cursor readout for the full-resolution point (x, y).

    ``"Classification: Tumor"`` for classification output,
    ``"Prediction: Stroma: 0.20, Tumor: 0.80"`` for probabilities.
    None when there is no model or the point is outside the image.
    """
    if model is None or not (0 <= x < source.width and 0 <= y < source.height):
        return None
    wx = int(model.resolution.to_working(x))
    wy = int(model.resolution.to_working(y))
    values = model.predict_region(source, wx, wy, 1, 1)
    names = model.metadata.class_names
    if model.channel_type == PROBABILITY:
        probs = values[0, 0]
        return "Prediction: " + ", ".join(f"{name}: {p:.2f}" for name, p in zip(names, probs))
    return f"Classification: {names[int(values[0, 0])]}"
