"""Feature normalization and optional PCA reduction.

``FeatureNormalization`` is the user's choice; ``build`` fits it on the
train split of one training run and returns a ``FittedPreprocessor`` that
is then applied unchanged to the train split, the test split and every
live prediction tile.
"""

import hashlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

import numpy as np
from sklearn.decomposition import PCA
from sklearn.preprocessing import MinMaxScaler, StandardScaler

from pixtrain.contracts import ConfigurationError, require

__all__ = [
    'Normalization',
    'FeatureNormalization',
    'FittedPreprocessor',
]

logger = logging.getLogger(__name__)


class Normalization(str, Enum):
    """Per-feature normalization applied before PCA and training."""
    NONE = "none"
    MEAN_VARIANCE = "mean_variance"
    MIN_MAX = "min_max"

    def __str__(self):
        return {
            "none": "None",
            "mean_variance": "Mean & variance",
            "min_max": "Min & max",
        }[self.value]


@dataclass(frozen=True)
class FeatureNormalization:
    """Unfitted preprocessing choice.

    Parameters
    ----------
    normalization : Normalization
        Per-feature scaling.
    pca_retained_variance : float
        PCA is applied when in (0, 1]; the smallest number of components
        whose cumulative explained variance ratio reaches this value is kept.
    pca_normalize : bool
        Rescale projected components to unit variance.
    """
    normalization: Normalization = Normalization.NONE
    pca_retained_variance: float = 0.0
    pca_normalize: bool = False

    def __post_init__(self):
        object.__setattr__(self, "normalization", Normalization(self.normalization))
        if self.pca_retained_variance > 1:
            raise ConfigurationError(
                f"PCA retained variance must be <= 1, got {self.pca_retained_variance}"
            )

    @classmethod
    def from_config(cls, config) -> "FeatureNormalization":
        return cls(Normalization(config.normalization), config.pca_retained_variance, config.pca_normalize)

    @property
    def does_pca(self) -> bool:
        return 0 < self.pca_retained_variance <= 1

    def does_something(self) -> bool:
        return self.normalization != Normalization.NONE or self.does_pca

    def build(self, train_features: np.ndarray) -> "FittedPreprocessor":
        """Fit on the train split only."""
        require(train_features.ndim == 2, f"Expected (N, F) features, got shape {train_features.shape}")
        n_rows, n_features = train_features.shape
        data = train_features.astype(np.float64)

        scaler = None
        if self.normalization == Normalization.MEAN_VARIANCE:
            scaler = StandardScaler().fit(data)
        elif self.normalization == Normalization.MIN_MAX:
            scaler = MinMaxScaler().fit(data)
        if scaler is not None:
            data = scaler.transform(data)

        pca = None
        if self.does_pca:
            if n_rows < 2:
                raise ConfigurationError(f"PCA needs at least 2 training samples, got {n_rows}")
            full = PCA(svd_solver="full").fit(data)
            cumulative = np.cumsum(full.explained_variance_ratio_)
            n_components = int(np.searchsorted(cumulative, self.pca_retained_variance - 1e-12)) + 1
            n_components = min(n_components, full.n_components_)
            pca = PCA(n_components=n_components, whiten=self.pca_normalize, svd_solver="full").fit(data)
            logger.info(
                "PCA keeps %d of %d components (%.1f%% variance)",
                n_components, n_features, 100 * cumulative[n_components - 1],
            )

        return FittedPreprocessor(self, scaler, pca, n_features, n_rows)


class FittedPreprocessor:
    """Normalization and projection fitted on one train split."""

    def __init__(self, settings: FeatureNormalization, scaler, pca: Optional[PCA], n_inputs: int, n_fit_rows: int):
        self.settings = settings
        self.scaler = scaler
        self.pca = pca
        self.n_inputs = n_inputs
        self.n_fit_rows = n_fit_rows
        self._digest = None

    def does_something(self) -> bool:
        return self.scaler is not None or self.pca is not None

    @property
    def n_outputs(self) -> int:
        return self.pca.n_components_ if self.pca is not None else self.n_inputs

    def output_names(self, input_names: Sequence[str]) -> list[str]:
        if self.pca is None:
            return list(input_names)
        return [f"PC{i + 1}" for i in range(self.n_outputs)]

    def apply(self, features: np.ndarray, is_training_fit: bool = False) -> np.ndarray:
        """Return preprocessed copy of ``features``; the input is never modified.

        Parameters
        ----------
        features : np.ndarray
            (N, F) feature rows.
        is_training_fit : bool
            Caller asserts these are the rows the preprocessor was fit on.
        """
        require(
            features.ndim == 2 and features.shape[1] == self.n_inputs,
            f"Preprocessor fit on {self.n_inputs} features, got shape {features.shape}",
        )
        if is_training_fit:
            require(
                features.shape[0] == self.n_fit_rows,
                f"Preprocessor fit on {self.n_fit_rows} rows, asked to apply to {features.shape[0]} as training fit",
            )
        out = features.astype(np.float64, copy=True)
        if self.scaler is not None:
            out = self.scaler.transform(out)
        if self.pca is not None:
            out = self.pca.transform(out)
        return out.astype(np.float32)

    def digest(self) -> str:
        """Stable fingerprint of the fitted parameters."""
        if self._digest is None:
            h = hashlib.sha1()
            h.update(repr((self.settings.normalization.value, self.settings.pca_normalize, self.n_inputs)).encode())
            arrays = []
            if self.scaler is not None:
                arrays += [getattr(self.scaler, a) for a in ("mean_", "scale_", "min_") if hasattr(self.scaler, a)]
            if self.pca is not None:
                arrays += [self.pca.mean_, self.pca.components_, self.pca.explained_variance_]
            for arr in arrays:
                if arr is not None:
                    h.update(np.ascontiguousarray(arr, dtype=np.float64).tobytes())
            self._digest = h.hexdigest()
        return self._digest

    def __repr__(self):
        return (
            f"FittedPreprocessor(normalization={self.settings.normalization.value}, "
            f"pca={self.n_outputs if self.pca is not None else None}, inputs={self.n_inputs})"
        )
