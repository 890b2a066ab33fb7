"""Tests for classifier selection and capabilities."""

import numpy as np
import pytest
from sklearn.dummy import DummyClassifier

from pixtrain.contracts import ConfigurationError
from pixtrain.schemas.param import ClassifierConfig
from pixtrain.training.classifiers import (
    ClassifierSpec,
    StatModel,
    available_classifiers,
    get_classifier_spec,
    register_classifier,
)

pytestmark = pytest.mark.unit


@pytest.fixture
def separable():
    rng = np.random.default_rng(3)
    x = np.vstack([rng.normal(0, 0.1, (40, 2)), rng.normal(5, 0.1, (40, 2))]).astype(np.float32)
    y = np.array([0] * 40 + [1] * 40, dtype=np.int32)
    return x, y


class TestRegistry:

    def test_builtin_kinds(self):
        assert set(available_classifiers()) >= {"rtrees", "ann_mlp", "logistic_regression", "knearest", "majority"}

    def test_unknown_kind(self):
        with pytest.raises(ConfigurationError, match="Unknown classifier"):
            StatModel("svm_magic")

    def test_duplicate_registration(self):
        with pytest.raises(ConfigurationError, match="already registered"):
            register_classifier("rtrees", get_classifier_spec("rtrees"))

    def test_register_new_kind(self):
        spec = ClassifierSpec(lambda params, seed, n: DummyClassifier(strategy="prior"), True, False, False, "Prior")
        register_classifier("Test_Prior", spec, replace_existing=True)

        assert str(StatModel("test_prior")) == "Prior"

    def test_capabilities(self):
        assert get_classifier_spec("rtrees").has_feature_importance
        assert not get_classifier_spec("knearest").supports_weights


class TestStatModel:

    def test_from_config(self):
        model = StatModel.from_config(ClassifierConfig(kind="KNearest", params={"n_neighbors": 3}))

        assert model.kind == "knearest"
        assert model.params == {"n_neighbors": 3}

    def test_with_params_returns_new(self):
        model = StatModel("rtrees")
        updated = model.with_params(n_estimators=5)

        assert model.params == {}
        assert updated.params == {"n_estimators": 5}

    @pytest.mark.parametrize("kind", ["rtrees", "ann_mlp", "logistic_regression", "knearest"])
    def test_fit_separable(self, kind, separable):
        x, y = separable
        fitted = StatModel(kind).fit(x, y, n_classes=2, rng_seed=0)

        assert (fitted.predict(x) == y).mean() == 1.0
        assert fitted.predict(x).dtype == np.int32

    def test_majority(self, separable):
        x, y = separable
        fitted = StatModel("majority").fit(x[:50], y[:50], n_classes=2)

        assert set(fitted.predict(x).tolist()) == {0}

    def test_knn_neighbours_capped(self, separable):
        x, y = separable
        fitted = StatModel("knearest", {"n_neighbors": 50}).fit(x[:3], y[:3], n_classes=2)

        assert fitted.estimator.n_neighbors == 3

    def test_weights_dropped_when_unsupported(self, separable, caplog):
        x, y = separable
        with caplog.at_level("WARNING"):
            StatModel("knearest").fit(x, y, 2, weights=np.ones(len(y)))

        assert "does not support sample weights" in caplog.text


class TestFittedClassifier:

    def test_probabilities_cover_all_classes(self, separable):
        """Classes absent from training still get a (zero) probability column."""
        x, y = separable
        fitted = StatModel("rtrees", {"n_estimators": 5}).fit(x, y + 1, n_classes=3, rng_seed=0)

        proba = fitted.predict_proba(x)

        assert proba.shape == (80, 3)
        assert proba.dtype == np.float32
        np.testing.assert_allclose(proba[:, 0], 0)
        np.testing.assert_allclose(proba.sum(axis=1), 1, rtol=1e-5)

    def test_feature_importance(self, separable):
        x, y = separable

        rf = StatModel("rtrees", {"n_estimators": 5}).fit(x, y, 2, rng_seed=0)
        knn = StatModel("knearest").fit(x, y, 2)

        assert rf.feature_importance().shape == (2,)
        assert knn.feature_importance() is None
