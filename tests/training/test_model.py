"""Tests for TrainedModel prediction and artifact export."""

import json
import os
import pickle

import numpy as np
import pytest
from sklearn.dummy import DummyClassifier

from pixtrain.contracts import ConfigurationError
from pixtrain.imaging.features import build_default_operator
from pixtrain.imaging.resolution import default_resolutions
from pixtrain.training.classifiers import ClassifierSpec, StatModel, register_classifier
from pixtrain.training.model import (
    CLASSIFICATION,
    PROBABILITY,
    CLASSIFIER_FILE,
    MAX_CLASSES,
    METADATA_FILE,
    build_trained_model,
    export_artifact,
    invert_label_map,
    load_artifact,
)
from pixtrain.training.preprocessing import FeatureNormalization
from pixtrain.training.samples import Skip, assemble
from pixtrain.training.trainer import TrainingOptions, train

pytestmark = pytest.mark.unit

FULL = default_resolutions()[0]


@pytest.fixture
def operator(image_source):
    return build_default_operator(image_source.channel_names, [1.0], ["gaussian"], FULL)


@pytest.fixture
def table(hierarchy, image_source, operator):
    return assemble(hierarchy, image_source, operator, Skip(1.0))


def _train(table, operator, output_type=CLASSIFICATION):
    model, _ = train(
        table, StatModel("rtrees", {"n_estimators": 5}), TrainingOptions(rng_seed=1),
        FeatureNormalization(), output_type=output_type, feature_operator=operator,
    )
    return model


class TestPrediction:

    def test_classification_region(self, table, operator, image_source):
        model = _train(table, operator)
        tile = model.predict_region(image_source, 0, 0, 64, 64)

        assert tile.shape == (64, 64)
        assert tile.dtype == np.uint8
        assert (tile[:, :28] == 0).all()
        assert (tile[:, 36:] == 1).all()

    def test_probability_region(self, table, operator, image_source):
        model = _train(table, operator, PROBABILITY)
        tile = model.predict_region(image_source, 0, 0, 16, 8)

        assert tile.shape == (8, 16, 2)
        assert tile.dtype == np.float32
        np.testing.assert_allclose(tile.sum(axis=2), 1, rtol=1e-5)

    def test_classify_outside_image(self, table, operator, image_source):
        model = _train(table, operator)
        assert model.classify(image_source, -1, 10) is None
        assert model.classify(image_source, 10, 64) is None

    def test_metadata(self, table, operator):
        model = _train(table, operator)

        assert model.metadata.class_names == ["Stroma", "Tumor"]
        assert model.metadata.n_classes == 2
        assert model.resolution == FULL
        assert model.metadata.to_dict()["channel_type"] == CLASSIFICATION


class TestBuildTrainedModel:

    def test_probability_falls_back_without_support(self, table, operator, caplog):
        spec = ClassifierSpec(
            lambda params, seed, n: DummyClassifier(strategy="most_frequent"),
            supports_probabilities=False, supports_weights=False, has_feature_importance=False,
        )
        register_classifier("no_probabilities", spec, replace_existing=True)
        fitted = StatModel("no_probabilities").fit(table.features, table.labels, table.n_classes)

        with caplog.at_level("WARNING"):
            model = build_trained_model(fitted, operator, table.label_map, FULL, PROBABILITY)

        assert model.channel_type == CLASSIFICATION
        assert "cannot produce probabilities" in caplog.text

    def test_too_many_classes(self, table, operator):
        fitted = StatModel("rtrees", {"n_estimators": 2}).fit(table.features, table.labels, table.n_classes)
        label_map = {f"Class {i}": i for i in range(MAX_CLASSES + 1)}

        with pytest.raises(ConfigurationError, match="At most 256 classes"):
            build_trained_model(fitted, operator, label_map, FULL)

    def test_class_limit_is_inclusive(self, table, operator):
        fitted = StatModel("rtrees", {"n_estimators": 2}).fit(table.features, table.labels, table.n_classes)
        label_map = {f"Class {i:03d}": i for i in range(MAX_CLASSES)}

        model = build_trained_model(fitted, operator, label_map, FULL)

        assert model.metadata.n_classes == MAX_CLASSES

    def test_invert_label_map_duplicates(self, caplog):
        with caplog.at_level("WARNING"):
            inverse = invert_label_map({"A": 0, "B": 0, "C": 1})

        assert inverse == {0: "B", 1: "C"}
        assert "Duplicate label index" in caplog.text


class TestArtifact:

    def test_export_and_load(self, table, operator, image_source, temp_dir):
        model = _train(table, operator)
        directory = export_artifact(model, str(temp_dir / "clf"))

        assert os.path.exists(os.path.join(directory, CLASSIFIER_FILE))
        with open(os.path.join(directory, METADATA_FILE)) as f:
            metadata = json.load(f)
        assert metadata["classifier"] == "rtrees"
        assert [c["name"] for c in metadata["output_channels"]] == ["Stroma", "Tumor"]
        assert len(metadata["features"]) == operator.n_features

        loaded = load_artifact(directory)
        np.testing.assert_array_equal(
            loaded.predict_region(image_source, 0, 0, 64, 64),
            model.predict_region(image_source, 0, 0, 64, 64),
        )

    def test_load_rejects_other_pickles(self, temp_dir):
        with open(temp_dir / CLASSIFIER_FILE, "wb") as f:
            pickle.dump({"not": "a model"}, f)

        with pytest.raises(TypeError, match="TrainedModel"):
            load_artifact(str(temp_dir))
