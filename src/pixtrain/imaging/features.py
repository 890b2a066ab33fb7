"""Feature operators: immutable chains of image transforms.

A FeatureOperator is a resolution, the names of the channels it reads
and a tuple of transform descriptors applied in order. Appending a
transform returns a new operator, and two operators built the same way
compare and hash equal, so they can key a tile cache directly.

Every descriptor maps an ``(H, W, C)`` float32 block to ``(H, W, F)``
float32 and reports the halo it needs (``padding``) and the names of
its outputs.
"""

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Callable, Optional, Sequence

import numpy as np
from scipy import ndimage as ndi
from skimage import feature as skfeature
from skimage import filters as skfilters

from pixtrain.contracts import ConfigurationError, require
from pixtrain.imaging.resolution import Resolution
from pixtrain.imaging.tiles import TileSource, read_scaled

__all__ = [
    'FEATURE_FUNCTIONS',
    'FeatureOperator',
    'ChannelsOp',
    'FilterOp',
    'FeatureBankOp',
    'PreprocessOp',
    'compose',
    'build_default_operator',
    'operator_from_config',
]

logger = logging.getLogger(__name__)

DOG_RATIO = 1.6


# =============================================================================
# Per-channel feature functions
# =============================================================================

def _gaussian(channel, sigma):
    return [ndi.gaussian_filter(channel, sigma, mode="nearest")]


def _gradient_magnitude(channel, sigma):
    return [ndi.gaussian_gradient_magnitude(channel, sigma, mode="nearest")]


def _laplacian_of_gaussian(channel, sigma):
    return [ndi.gaussian_laplace(channel, sigma, mode="nearest")]


def _difference_of_gaussians(channel, sigma):
    return [skfilters.difference_of_gaussians(channel, sigma, sigma * DOG_RATIO, mode="nearest")]


def _hessian_eigenvalues(channel, sigma):
    hessian = skfeature.hessian_matrix(channel, sigma=sigma, order="rc", mode="nearest", use_gaussian_derivatives=False)
    eigvals = skfeature.hessian_matrix_eigvals(hessian)
    return [eigvals[0], eigvals[1]]


def _structure_tensor_eigenvalues(channel, sigma):
    tensor = skfeature.structure_tensor(channel, sigma=sigma, order="rc", mode="nearest")
    eigvals = skfeature.structure_tensor_eigenvalues(tensor)
    return [eigvals[0], eigvals[1]]


# name -> (function, output suffixes, halo as a multiple of sigma)
FEATURE_FUNCTIONS: dict[str, tuple[Callable, tuple[str, ...], float]] = {
    "gaussian": (_gaussian, ("Gaussian",), 4.0),
    "gradient_magnitude": (_gradient_magnitude, ("Gradient magnitude",), 4.0),
    "laplacian_of_gaussian": (_laplacian_of_gaussian, ("Laplacian of Gaussian",), 4.0),
    "difference_of_gaussians": (_difference_of_gaussians, ("Difference of Gaussians",), 4.0 * DOG_RATIO),
    "hessian_eigenvalues": (_hessian_eigenvalues, ("Hessian max eigenvalue", "Hessian min eigenvalue"), 4.0),
    "structure_tensor_eigenvalues": (
        _structure_tensor_eigenvalues,
        ("Structure tensor max eigenvalue", "Structure tensor min eigenvalue"),
        4.0,
    ),
}


# =============================================================================
# Transform descriptors
# =============================================================================

@dataclass(frozen=True)
class ChannelsOp:
    """Keep only the input channels at ``indices``."""
    indices: tuple[int, ...]

    def padding(self) -> int:
        return 0

    def output_names(self, input_names: Sequence[str]) -> list[str]:
        return [input_names[i] for i in self.indices]

    def apply(self, image: np.ndarray) -> np.ndarray:
        return image[:, :, list(self.indices)]


@dataclass(frozen=True)
class FilterOp:
    """Apply one feature function at one scale to every channel."""
    feature: str
    sigma: float

    def __post_init__(self):
        if self.feature not in FEATURE_FUNCTIONS:
            raise ConfigurationError(f"Unknown feature '{self.feature}'. Choose from {sorted(FEATURE_FUNCTIONS)}")

    def padding(self) -> int:
        return int(math.ceil(FEATURE_FUNCTIONS[self.feature][2] * self.sigma)) + 1

    def output_names(self, input_names: Sequence[str]) -> list[str]:
        suffixes = FEATURE_FUNCTIONS[self.feature][1]
        return [f"{name}: {suffix} sigma={self.sigma:g}" for name in input_names for suffix in suffixes]

    def apply(self, image: np.ndarray) -> np.ndarray:
        fn = FEATURE_FUNCTIONS[self.feature][0]
        outputs = []
        for c in range(image.shape[2]):
            outputs.extend(fn(image[:, :, c], self.sigma))
        return np.stack(outputs, axis=-1).astype(np.float32, copy=False)


@dataclass(frozen=True)
class FeatureBankOp:
    """Run several filters on the same input and concatenate their outputs."""
    filters: tuple[FilterOp, ...]

    def padding(self) -> int:
        return max((f.padding() for f in self.filters), default=0)

    def output_names(self, input_names: Sequence[str]) -> list[str]:
        names = []
        for f in self.filters:
            names.extend(f.output_names(input_names))
        return names

    def apply(self, image: np.ndarray) -> np.ndarray:
        return np.concatenate([f.apply(image) for f in self.filters], axis=-1)


@dataclass(frozen=True)
class PreprocessOp:
    """Apply a fitted preprocessor to every pixel's feature vector.

    Equality follows the preprocessor's fitted parameters (``digest``),
    not object identity.
    """
    digest: str
    preprocessor: object = field(compare=False, hash=False, repr=False)

    @classmethod
    def wrap(cls, preprocessor) -> "PreprocessOp":
        return cls(preprocessor.digest(), preprocessor)

    def padding(self) -> int:
        return 0

    def output_names(self, input_names: Sequence[str]) -> list[str]:
        return self.preprocessor.output_names(list(input_names))

    def apply(self, image: np.ndarray) -> np.ndarray:
        h, w, f = image.shape
        flat = self.preprocessor.apply(image.reshape(h * w, f))
        return flat.reshape(h, w, -1)


# =============================================================================
# Operator
# =============================================================================

@dataclass(frozen=True)
class FeatureOperator:
    """Immutable transform chain at a fixed resolution."""
    resolution: Resolution
    input_channels: tuple[str, ...]
    ops: tuple = ()

    def append(self, *ops) -> "FeatureOperator":
        """New operator with ``ops`` added at the end; ``self`` is unchanged."""
        return replace(self, ops=self.ops + tuple(ops))

    def at_resolution(self, resolution: Resolution) -> "FeatureOperator":
        return replace(self, resolution=resolution)

    @property
    def channel_names(self) -> list[str]:
        names = list(self.input_channels)
        for op in self.ops:
            names = op.output_names(names)
        return names

    @property
    def n_features(self) -> int:
        return len(self.channel_names)

    def padding(self) -> int:
        """Halo in working pixels needed for exact results inside a block."""
        return sum(op.padding() for op in self.ops)

    def apply(self, image: np.ndarray) -> np.ndarray:
        """Transform an (H, W, C) block into (H, W, F) float32 features."""
        require(
            image.ndim == 3 and image.shape[2] == len(self.input_channels),
            f"Feature operator expects (H, W, {len(self.input_channels)}) input, got {image.shape}",
        )
        out = image.astype(np.float32, copy=False)
        for op in self.ops:
            out = op.apply(out)
        return out.astype(np.float32, copy=False)

    def compute(self, source: TileSource, x: int, y: int, width: int, height: int) -> np.ndarray:
        """Features for a block of the working resolution, with the halo read and cropped away."""
        pad = self.padding()
        block = read_scaled(source, self.resolution.downsample, x - pad, y - pad, width + 2 * pad, height + 2 * pad)
        features = self.apply(block)
        return features[pad:pad + height, pad:pad + width]


def compose(base_operator: Optional[FeatureOperator], resolution: Resolution) -> FeatureOperator:
    """Bind the selected feature calculator to a resolution.

    Raises
    ------
    ConfigurationError
        If no feature calculator is selected
    """
    if base_operator is None:
        raise ConfigurationError("No feature calculator selected")
    if base_operator.resolution == resolution:
        return base_operator
    return base_operator.at_resolution(resolution)


def build_default_operator(
    channel_names: Sequence[str],
    sigmas: Sequence[float],
    features: Sequence[str],
    resolution: Resolution,
    selected_channels: Optional[Sequence[str]] = None,
) -> FeatureOperator:
    """Every selected channel x feature x sigma, always including the smoothed channel.

    Parameters
    ----------
    channel_names : sequence of str
        Names of all image channels, in source order.
    sigmas : sequence of float
        Smoothing scales in working-resolution pixels.
    features : sequence of str
        Keys of FEATURE_FUNCTIONS.
    resolution : Resolution
        Working resolution.
    selected_channels : sequence of str, optional
        Subset of ``channel_names``; None selects all.
    """
    if not sigmas:
        raise ConfigurationError("At least one sigma is required")
    if selected_channels is None:
        indices = tuple(range(len(channel_names)))
    else:
        missing = [c for c in selected_channels if c not in channel_names]
        if missing:
            raise ConfigurationError(f"Unknown channels {missing}; image has {list(channel_names)}")
        indices = tuple(channel_names.index(c) for c in selected_channels)
    if not indices:
        raise ConfigurationError("No channels selected")

    ordered = ["gaussian"] + [f for f in features if f != "gaussian"]
    filters = tuple(FilterOp(f, float(s)) for s in sorted(sigmas) for f in ordered)
    operator = FeatureOperator(resolution, tuple(channel_names))
    if indices != tuple(range(len(channel_names))):
        operator = operator.append(ChannelsOp(indices))
    return operator.append(FeatureBankOp(filters))


def operator_from_config(config, channel_names: Sequence[str], resolution: Resolution) -> FeatureOperator:
    """Default operator from the ``features`` config section."""
    operator = build_default_operator(
        list(channel_names),
        config.sigmas,
        config.features,
        resolution,
        selected_channels=config.channels,
    )
    logger.debug("Feature operator with %d outputs at %s", operator.n_features, resolution)
    return operator
