"""TrainedModel: the unit handed from the trainer to the overlays.

A TrainedModel bundles the fitted classifier, the exact feature operator
(preprocessing included) that produces its input, and the output
metadata. It is never modified after training; retraining produces a new
one.
"""

import json
import logging
import os
import pickle
from dataclasses import asdict, dataclass
from typing import Optional

import numpy as np

from pixtrain.contracts import ConfigurationError, assert_prediction_tile, require
from pixtrain.imaging.classes import PathClass
from pixtrain.imaging.features import FeatureOperator
from pixtrain.imaging.resolution import Resolution
from pixtrain.imaging.tiles import TileSource
from pixtrain.training.classifiers import FittedClassifier

__all__ = [
    'CLASSIFICATION',
    'PROBABILITY',
    'MAX_CLASSES',
    'OutputChannel',
    'ModelMetadata',
    'TrainedModel',
    'invert_label_map',
    'build_trained_model',
    'export_artifact',
    'load_artifact',
]

logger = logging.getLogger(__name__)

CLASSIFICATION = "classification"
PROBABILITY = "probability"

# Class indices are stored as uint8
MAX_CLASSES = 256

CLASSIFIER_FILE = "classifier.pkl"
METADATA_FILE = "metadata.json"


@dataclass(frozen=True)
class OutputChannel:
    name: str
    color: tuple[int, int, int]


@dataclass(frozen=True)
class ModelMetadata:
    """Output description of a TrainedModel."""
    resolution: Resolution
    channel_type: str
    output_channels: tuple[OutputChannel, ...]
    input_width: int = 512
    input_height: int = 512

    @property
    def n_classes(self) -> int:
        return len(self.output_channels)

    @property
    def class_names(self) -> list[str]:
        return [c.name for c in self.output_channels]

    def to_dict(self) -> dict:
        return {
            "resolution": asdict(self.resolution),
            "channel_type": self.channel_type,
            "output_channels": [{"name": c.name, "color": list(c.color)} for c in self.output_channels],
            "input_width": self.input_width,
            "input_height": self.input_height,
        }


class TrainedModel:
    """Fitted classifier plus the operator that feeds it.

    Read-only after construction, so worker threads may call
    ``predict_region`` concurrently.
    """

    def __init__(self, classifier: FittedClassifier, feature_operator: FeatureOperator, metadata: ModelMetadata):
        self._classifier = classifier
        self._feature_operator = feature_operator
        self._metadata = metadata

    @property
    def classifier(self) -> FittedClassifier:
        return self._classifier

    @property
    def feature_operator(self) -> FeatureOperator:
        return self._feature_operator

    @property
    def metadata(self) -> ModelMetadata:
        return self._metadata

    @property
    def resolution(self) -> Resolution:
        return self._metadata.resolution

    @property
    def channel_type(self) -> str:
        return self._metadata.channel_type

    def predict_features(self, features: np.ndarray) -> np.ndarray:
        """Prediction image for an (H, W, F) feature block.

        Returns
        -------
        np.ndarray
            (H, W) uint8 class indices, or (H, W, K) float32 probabilities.
        """
        h, w, f = features.shape
        flat = features.reshape(h * w, f)
        if self.channel_type == PROBABILITY:
            out = self._classifier.predict_proba(flat).reshape(h, w, -1).astype(np.float32, copy=False)
        else:
            out = self._classifier.predict(flat).reshape(h, w).astype(np.uint8)
        assert_prediction_tile(out, self.channel_type, self._metadata.n_classes)
        return out

    def predict_region(self, source: TileSource, x: int, y: int, width: int, height: int) -> np.ndarray:
        """Predict a block given in pixels of the model's resolution."""
        return self.predict_features(self._feature_operator.compute(source, x, y, width, height))

    def classify(self, source: TileSource, x: float, y: float) -> Optional[int]:
        """Class index at full-resolution point (x, y), or None outside the image."""
        if not (0 <= x < source.width and 0 <= y < source.height):
            return None
        wx = int(self.resolution.to_working(x))
        wy = int(self.resolution.to_working(y))
        tile = self.predict_region(source, wx, wy, 1, 1)
        if tile.ndim == 3:
            return int(np.argmax(tile[0, 0]))
        return int(tile[0, 0])

    def __repr__(self):
        return (
            f"TrainedModel({self._classifier.model.kind}, {self.channel_type}, "
            f"classes={self._metadata.class_names}, {self.resolution})"
        )


def invert_label_map(label_map: dict) -> dict[int, str]:
    """Index -> class name. Duplicate indices are logged; the last name wins."""
    inverse: dict[int, str] = {}
    for name, index in label_map.items():
        if index in inverse:
            logger.warning("Duplicate label index %d for '%s' and '%s'; using '%s'", index, inverse[index], name, name)
        inverse[index] = name
    return inverse


def build_trained_model(
    classifier: FittedClassifier,
    feature_operator: FeatureOperator,
    label_map: dict,
    resolution: Resolution,
    output_type: str = CLASSIFICATION,
    tile_size: int = 512,
) -> TrainedModel:
    """Wrap a fitted classifier with its metadata.

    A probability output falls back to classification when the classifier
    cannot produce probabilities.

    Raises
    ------
    ConfigurationError
        If there are more classes than a uint8 class index can hold.
    """
    require(
        len(label_map) <= MAX_CLASSES,
        f"At most {MAX_CLASSES} classes are supported, got {len(label_map)}",
        ConfigurationError,
    )
    if output_type == PROBABILITY and not classifier.supports_probabilities:
        logger.warning("%s cannot produce probabilities; using classification output", classifier.model)
        output_type = CLASSIFICATION

    inverse = invert_label_map(label_map)
    channels = tuple(
        OutputChannel(inverse[i], PathClass.get(inverse[i]).color)
        for i in sorted(inverse)
    )
    metadata = ModelMetadata(resolution, output_type, channels, tile_size, tile_size)
    return TrainedModel(classifier, feature_operator, metadata)


def export_artifact(model: TrainedModel, directory: str) -> str:
    """Write ``classifier.pkl`` (the whole model) and ``metadata.json`` to ``directory``."""
    os.makedirs(directory, exist_ok=True)
    with open(os.path.join(directory, CLASSIFIER_FILE), "wb") as f:
        pickle.dump(model, f)

    metadata = model.metadata.to_dict()
    metadata["classifier"] = model.classifier.model.kind
    metadata["classifier_params"] = model.classifier.model.params
    metadata["features"] = model.feature_operator.channel_names
    with open(os.path.join(directory, METADATA_FILE), "w") as f:
        json.dump(metadata, f, indent=2, default=str)

    logger.info("Saved pixel classifier to %s", directory)
    return directory


def load_artifact(directory: str) -> TrainedModel:
    path = os.path.join(directory, CLASSIFIER_FILE)
    with open(path, "rb") as f:
        model = pickle.load(f)
    if not isinstance(model, TrainedModel):
        raise TypeError(f"{path} does not contain a TrainedModel (got {type(model).__name__})")
    logger.info("Loaded %r", model)
    return model
