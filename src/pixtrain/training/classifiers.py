"""Classifier capabilities.

A classifier is selected by kind, not by class: ``StatModel("rtrees")``
looks up a registered ``ClassifierSpec`` that says how to build the
scikit-learn estimator and what it can do (probabilities, sample weights,
feature importance). Callers only ever look at those capability flags.
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Optional

import numpy as np
from sklearn.dummy import DummyClassifier
from sklearn.ensemble import RandomForestClassifier
from sklearn.linear_model import LogisticRegression
from sklearn.neighbors import KNeighborsClassifier
from sklearn.neural_network import MLPClassifier

from pixtrain.contracts import ConfigurationError

__all__ = [
    'ClassifierSpec',
    'StatModel',
    'FittedClassifier',
    'register_classifier',
    'available_classifiers',
    'get_classifier_spec',
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClassifierSpec:
    """What a classifier kind can do, and how to build it.

    ``factory(params, rng_seed, n_samples)`` returns an unfitted estimator.
    """
    factory: Callable[[dict, int, int], Any]
    supports_probabilities: bool
    supports_weights: bool
    has_feature_importance: bool
    description: str = ""


def _rtrees(params, rng_seed, n_samples):
    options = {"n_estimators": 50, "min_samples_leaf": 1, **params}
    return RandomForestClassifier(random_state=rng_seed, **options)


def _ann_mlp(params, rng_seed, n_samples):
    options = {"hidden_layer_sizes": (32,), "max_iter": 500, **params}
    return MLPClassifier(random_state=rng_seed, **options)


def _logistic_regression(params, rng_seed, n_samples):
    options = {"max_iter": 1000, **params}
    return LogisticRegression(random_state=rng_seed, **options)


def _knearest(params, rng_seed, n_samples):
    options = {"n_neighbors": 5, **params}
    # Cannot ask for more neighbours than there are samples
    options["n_neighbors"] = max(1, min(int(options["n_neighbors"]), n_samples))
    return KNeighborsClassifier(**options)


def _majority(params, rng_seed, n_samples):
    return DummyClassifier(**{"strategy": "most_frequent", **params})


_REGISTRY: dict[str, ClassifierSpec] = {
    "rtrees": ClassifierSpec(_rtrees, True, True, True, "Random trees"),
    "ann_mlp": ClassifierSpec(_ann_mlp, True, False, False, "Artificial neural network (MLP)"),
    "logistic_regression": ClassifierSpec(_logistic_regression, True, True, False, "Logistic regression"),
    "knearest": ClassifierSpec(_knearest, True, False, False, "K nearest neighbor"),
    "majority": ClassifierSpec(_majority, True, True, False, "Majority class baseline"),
}
_registry_lock = threading.Lock()


def register_classifier(kind: str, spec: ClassifierSpec, replace_existing: bool = False) -> None:
    """Make a new classifier kind available by name."""
    kind = kind.lower().strip()
    with _registry_lock:
        if kind in _REGISTRY and not replace_existing:
            raise ConfigurationError(f"Classifier kind '{kind}' is already registered")
        _REGISTRY[kind] = spec
    logger.debug("Registered classifier kind %s", kind)


def available_classifiers() -> list[str]:
    with _registry_lock:
        return list(_REGISTRY)


def get_classifier_spec(kind: str) -> ClassifierSpec:
    with _registry_lock:
        spec = _REGISTRY.get(kind)
    if spec is None:
        raise ConfigurationError(f"Unknown classifier '{kind}'. Available: {available_classifiers()}")
    return spec


@dataclass(frozen=True)
class StatModel:
    """Selected classifier kind plus its parameters. Unfitted."""
    kind: str
    params: dict = field(default_factory=dict)

    def __post_init__(self):
        get_classifier_spec(self.kind)

    @classmethod
    def from_config(cls, config) -> "StatModel":
        return cls(config.kind, dict(config.params))

    @property
    def spec(self) -> ClassifierSpec:
        return get_classifier_spec(self.kind)

    @property
    def supports_probabilities(self) -> bool:
        return self.spec.supports_probabilities

    def with_params(self, **params) -> "StatModel":
        """New StatModel with ``params`` merged in."""
        return replace(self, params={**self.params, **params})

    def fit(
        self,
        features: np.ndarray,
        labels: np.ndarray,
        n_classes: int,
        weights: Optional[np.ndarray] = None,
        rng_seed: int = 0,
    ) -> "FittedClassifier":
        """Train a fresh estimator. The StatModel itself is never modified."""
        spec = self.spec
        estimator = spec.factory(dict(self.params), rng_seed, len(labels))
        if weights is not None and not spec.supports_weights:
            logger.warning("%s does not support sample weights; training without them", spec.description)
            weights = None
        if weights is not None:
            estimator.fit(features, labels, sample_weight=weights)
        else:
            estimator.fit(features, labels)
        return FittedClassifier(self, estimator, n_classes)

    def __str__(self):
        return self.spec.description or self.kind


class FittedClassifier:
    """Trained estimator. Read-only after construction, safe to share across threads."""

    def __init__(self, model: StatModel, estimator, n_classes: int):
        self.model = model
        self.estimator = estimator
        self.n_classes = n_classes

    @property
    def supports_probabilities(self) -> bool:
        return self.model.spec.supports_probabilities and hasattr(self.estimator, "predict_proba")

    def predict(self, features: np.ndarray) -> np.ndarray:
        return np.asarray(self.estimator.predict(features), dtype=np.int32)

    def predict_proba(self, features: np.ndarray) -> np.ndarray:
        """(N, K) probabilities over every class, zeros for classes unseen in training."""
        if not self.supports_probabilities:
            raise ConfigurationError(f"{self.model} cannot produce probabilities")
        proba = self.estimator.predict_proba(features)
        out = np.zeros((features.shape[0], self.n_classes), dtype=np.float32)
        out[:, np.asarray(self.estimator.classes_, dtype=int)] = proba
        return out

    def feature_importance(self) -> Optional[np.ndarray]:
        if not self.model.spec.has_feature_importance:
            return None
        scores = getattr(self.estimator, "feature_importances_", None)
        if scores is None:
            return None
        return np.asarray(scores, dtype=np.float64)

    def __repr__(self):
        return f"FittedClassifier({self.model.kind}, classes={self.n_classes})"
