"""Trainer/Evaluator.

One call to ``train`` is one training run: split the samples, fit the
preprocessor on the train split, optionally reweight by class
frequency, fit the classifier, evaluate and rank feature importance.
Nothing from a run is kept except the TrainedModel and its report.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

import numpy as np
import pandas as pd

from pixtrain.contracts import ConsistencyError, assert_labels_in_map
from pixtrain.imaging.features import FeatureOperator, PreprocessOp, compose
from pixtrain.imaging.resolution import Resolution
from pixtrain.training.classifiers import StatModel
from pixtrain.training.model import CLASSIFICATION, TrainedModel, build_trained_model
from pixtrain.training.preprocessing import FeatureNormalization
from pixtrain.training.samples import SampleTable, class_counts

__all__ = [
    'HELD_OUT',
    'TRAINING_SET',
    'TrainingOptions',
    'TrainingReport',
    'split_indices',
    'class_weights',
    'sample_weights',
    'rank_feature_importance',
    'train',
]

logger = logging.getLogger(__name__)

HELD_OUT = "held-out"
TRAINING_SET = "training-set"


@dataclass(frozen=True)
class TrainingOptions:
    """Closed set of per-run options."""
    max_samples: int = 100000
    rng_seed: int = 100
    reweight_samples: bool = False

    @classmethod
    def from_config(cls, config) -> "TrainingOptions":
        return cls(config.max_samples, config.rng_seed, config.reweight_samples)


@dataclass(frozen=True)
class TrainingReport:
    """Outcome of one training run.

    ``accuracy`` is measured on ``evaluation_set``: the held-out split when
    there is one, otherwise the training split itself.
    """
    accuracy: Optional[float]
    evaluation_set: Optional[str]
    n_train: int = 0
    n_test: int = 0
    class_counts: dict = field(default_factory=dict)
    feature_importance: Optional[list] = None

    @classmethod
    def empty(cls) -> "TrainingReport":
        """Report for a run with nothing to train."""
        return cls(accuracy=None, evaluation_set=None)

    @property
    def is_empty(self) -> bool:
        return self.evaluation_set is None

    @property
    def held_out_accuracy(self) -> Optional[float]:
        return self.accuracy if self.evaluation_set == HELD_OUT else None

    @property
    def training_accuracy(self) -> Optional[float]:
        return self.accuracy if self.evaluation_set == TRAINING_SET else None

    def to_dict(self) -> dict:
        return {
            "held_out_accuracy": self.held_out_accuracy,
            "training_accuracy": self.training_accuracy,
            "evaluation_set": self.evaluation_set,
            "n_train": self.n_train,
            "n_test": self.n_test,
            "class_counts": dict(self.class_counts),
            "feature_importance": (
                [[name, score] for name, score in self.feature_importance]
                if self.feature_importance is not None else None
            ),
        }

    def to_frame(self) -> pd.DataFrame:
        """Ranked feature importance as a DataFrame (empty when unsupported)."""
        rows = self.feature_importance or []
        df = pd.DataFrame(rows, columns=["feature", "importance"])
        df.index = pd.RangeIndex(1, len(df) + 1, name="rank")
        return df

    def __str__(self):
        if self.is_empty:
            return "Nothing to train"
        label = "Held-out accuracy" if self.evaluation_set == HELD_OUT else "Training accuracy"
        return f"{label}: {100 * self.accuracy:.1f}% ({self.n_train} train / {self.n_test} test)"


def split_indices(n_samples: int, max_samples: int, rng_seed: int) -> tuple[np.ndarray, np.ndarray]:
    """Seeded shuffle, then the first ``max_samples`` rows train and the rest test.

    When ``max_samples`` is 0 or not smaller than ``n_samples`` every row
    trains and the test split is empty.
    """
    order = np.random.default_rng(rng_seed).permutation(n_samples)
    if 0 < max_samples < n_samples:
        return order[:max_samples], order[max_samples:]
    return order, order[:0]


def class_weights(labels: np.ndarray, n_classes: int) -> np.ndarray:
    """Inverse-frequency weight per class: ``len(labels) / count``, or 1 for absent classes."""
    counts = np.bincount(labels, minlength=n_classes).astype(np.float64)
    total = float(len(labels))
    weights = np.ones(n_classes, dtype=np.float64)
    present = counts > 0
    weights[present] = total / counts[present]
    return weights


def sample_weights(labels: np.ndarray, n_classes: int) -> np.ndarray:
    return class_weights(labels, n_classes)[labels]


def rank_feature_importance(names, scores: Optional[np.ndarray]) -> Optional[list[tuple[str, float]]]:
    """(name, score) pairs by descending score, ties in original feature order."""
    if scores is None:
        return None
    if len(scores) != len(names):
        logger.warning("Got %d importance scores for %d features; ignoring them", len(scores), len(names))
        return None
    order = sorted(range(len(names)), key=lambda i: (-scores[i], i))
    return [(names[i], float(scores[i])) for i in order]


def train(
    sample_table: SampleTable,
    classifier: StatModel,
    options: TrainingOptions,
    normalization: FeatureNormalization,
    output_type: str = CLASSIFICATION,
    resolution: Optional[Resolution] = None,
    feature_operator: Optional[FeatureOperator] = None,
    tile_size: int = 512,
) -> tuple[TrainedModel, TrainingReport]:
    """Run one training pass.

    Parameters
    ----------
    sample_table : SampleTable
        Output of ``assemble``; never None here.
    classifier : StatModel
        Unfitted classifier choice.
    options : TrainingOptions
        Sample cap, seed and reweighting.
    normalization : FeatureNormalization
        Preprocessing choice, fitted here on the train split.
    output_type : str
        "classification" or "probability".
    resolution : Resolution
        Working resolution of the returned model.
    feature_operator : FeatureOperator
        Operator that produced ``sample_table``.

    Returns
    -------
    (TrainedModel, TrainingReport)

    Raises
    ------
    ConfigurationError
        If no feature operator is given, or preprocessing cannot be fit.
    ConsistencyError
        If a test label is not in the label map.
    """
    if resolution is None and feature_operator is not None:
        resolution = feature_operator.resolution
    operator = compose(feature_operator, resolution)
    n_classes = sample_table.n_classes

    train_idx, test_idx = split_indices(sample_table.n_samples, options.max_samples, options.rng_seed)
    train_x, train_y = sample_table.features[train_idx], sample_table.labels[train_idx]
    test_x, test_y = sample_table.features[test_idx], sample_table.labels[test_idx]
    logger.debug("Split %d samples into %d train / %d test", sample_table.n_samples, len(train_idx), len(test_idx))

    assert_labels_in_map(train_y, n_classes, "train")
    try:
        assert_labels_in_map(test_y, n_classes, "test")
    except ConsistencyError:
        logger.error(
            "Test split labels %s do not match label map %s",
            sorted(set(test_y.tolist())), sample_table.label_map,
        )
        raise

    preprocessor = normalization.build(train_x)
    if preprocessor.does_something():
        train_x = preprocessor.apply(train_x, is_training_fit=True)
        if len(test_idx):
            test_x = preprocessor.apply(test_x)
        operator = operator.append(PreprocessOp.wrap(preprocessor))

    weights = sample_weights(train_y, n_classes) if options.reweight_samples else None

    fitted = classifier.fit(train_x, train_y, n_classes, weights=weights, rng_seed=options.rng_seed)

    if len(test_idx):
        evaluation_set = HELD_OUT
        accuracy = float(np.mean(fitted.predict(test_x) == test_y))
    else:
        evaluation_set = TRAINING_SET
        accuracy = float(np.mean(fitted.predict(train_x) == train_y))
    logger.info("Current accuracy on the %s: %.1f %%", evaluation_set, 100 * accuracy)

    importance = rank_feature_importance(
        preprocessor.output_names(list(sample_table.feature_names)),
        fitted.feature_importance(),
    )
    if importance is not None:
        logger.info(
            "Feature importance:\n%s",
            "\n".join(f"{score:.4f}\t{name}" for name, score in importance),
        )

    model = build_trained_model(fitted, operator, sample_table.label_map, resolution, output_type, tile_size)
    report = TrainingReport(
        accuracy=accuracy,
        evaluation_set=evaluation_set,
        n_train=int(len(train_idx)),
        n_test=int(len(test_idx)),
        class_counts=class_counts(sample_table, train_y),
        feature_importance=importance,
    )
    return model, report
