"""Sample Assembler: turn annotations into a labelled feature table.

For every annotation with a usable class the polygon is rasterized at the
feature operator's resolution, a band along its edge is relabelled or
dropped according to the boundary strategy, features are computed for the
annotation's bounding box and one sample is emitted per labelled pixel.

Each annotation goes through an ``xarray.Dataset`` with ``features``
(y, x, feature) and ``labels`` (y, x), which is stacked into samples.
Unlabelled pixels carry label -1.
"""

import logging
import math
from dataclasses import dataclass, replace
from typing import Optional, Union

import numpy as np
import xarray as xr
from scipy import ndimage as ndi
from skimage.draw import polygon2mask
from skimage.morphology import disk

from pixtrain.contracts import assert_annotation_samples, assert_sample_table
from pixtrain.imaging.classes import BOUNDARY_CLASS_NAME, PathClass, is_ignored_class
from pixtrain.imaging.features import FeatureOperator
from pixtrain.imaging.hierarchy import AnnotationHierarchy, PathObject
from pixtrain.imaging.resolution import scaled_size
from pixtrain.imaging.tiles import TileSource

__all__ = [
    'Skip',
    'DerivedThickness',
    'ClassifyAs',
    'BoundaryStrategy',
    'with_thickness',
    'boundary_strategy_from_config',
    'SampleTable',
    'assemble',
    'class_counts',
    'rasterize_annotation',
]

logger = logging.getLogger(__name__)

UNLABELLED = -1


# =============================================================================
# Boundary strategies
# =============================================================================

@dataclass(frozen=True)
class Skip:
    """Pixels in the boundary band are left out of training."""
    thickness: float = 1.0

    @property
    def boundary_class(self) -> Optional[PathClass]:
        return None

    def __str__(self):
        return "Skip boundaries"


@dataclass(frozen=True)
class DerivedThickness:
    """Pixels in the boundary band get the synthetic "Boundary" class."""
    thickness: float = 1.0

    @property
    def boundary_class(self) -> Optional[PathClass]:
        return PathClass.get(BOUNDARY_CLASS_NAME)

    def __str__(self):
        return "Derived boundaries"


@dataclass(frozen=True)
class ClassifyAs:
    """Pixels in the boundary band are trained as ``path_class``."""
    path_class: PathClass
    thickness: float = 1.0

    @property
    def boundary_class(self) -> Optional[PathClass]:
        return self.path_class

    def __str__(self):
        return f"Classify as {self.path_class}"


BoundaryStrategy = Union[Skip, DerivedThickness, ClassifyAs]


def with_thickness(strategy: BoundaryStrategy, thickness: float) -> BoundaryStrategy:
    """Same strategy with a new band thickness."""
    return replace(strategy, thickness=float(thickness))


def boundary_strategy_from_config(config) -> BoundaryStrategy:
    if config.strategy == "derived":
        return DerivedThickness(config.thickness)
    if config.strategy == "classify":
        return ClassifyAs(PathClass.get(config.class_name), config.thickness)
    return Skip(config.thickness)


# =============================================================================
# Sample table
# =============================================================================

@dataclass(frozen=True, eq=False)
class SampleTable:
    """Labelled feature rows.

    ``label_map`` maps class names to dense indices in [0, K), assigned in
    sorted name order.
    """
    features: np.ndarray
    labels: np.ndarray
    label_map: dict
    feature_names: tuple

    @property
    def n_samples(self) -> int:
        return int(self.labels.shape[0])

    @property
    def n_features(self) -> int:
        return int(self.features.shape[1])

    @property
    def n_classes(self) -> int:
        return len(set(self.label_map.values()))

    @property
    def class_names(self) -> list[str]:
        """Class names in label index order."""
        return [name for name, _ in sorted(self.label_map.items(), key=lambda kv: (kv[1], kv[0]))]

    def subset(self, indices: np.ndarray) -> "SampleTable":
        return SampleTable(self.features[indices], self.labels[indices], self.label_map, self.feature_names)


def class_counts(table: SampleTable, labels: Optional[np.ndarray] = None) -> dict[str, int]:
    """Samples per class, in label order. ``labels`` defaults to the whole table."""
    if labels is None:
        labels = table.labels
    counts = np.bincount(labels, minlength=table.n_classes) if labels.size else np.zeros(table.n_classes, dtype=int)
    return {name: int(counts[table.label_map[name]]) for name in table.class_names}


# =============================================================================
# Assembly
# =============================================================================

def _working_bounds(obj: PathObject, downsample: float, margin: int, width: int, height: int):
    x0, y0, x1, y1 = obj.roi.bounds
    cx0 = max(0, int(math.floor(x0 / downsample)) - margin)
    cy0 = max(0, int(math.floor(y0 / downsample)) - margin)
    cx1 = min(width, int(math.ceil(x1 / downsample)) + margin)
    cy1 = min(height, int(math.ceil(y1 / downsample)) + margin)
    return cx0, cy0, cx1, cy1


def rasterize_annotation(
    obj: PathObject,
    downsample: float,
    bounds: tuple[int, int, int, int],
    thickness: float,
) -> tuple[np.ndarray, np.ndarray]:
    """Interior and boundary-band masks of ``obj`` inside ``bounds``.

    A working pixel belongs to the annotation when its centre lies inside
    the polygon. The band holds annotation pixels within ``thickness``
    pixels of the outline; pixels at the crop border (the image edge)
    are not treated as boundary.
    """
    cx0, cy0, cx1, cy1 = bounds
    shape = (cy1 - cy0, cx1 - cx0)
    vertices = obj.roi.vertices / downsample
    polygon_rc = np.column_stack([vertices[:, 1] - cy0 - 0.5, vertices[:, 0] - cx0 - 0.5])
    mask = polygon2mask(shape, polygon_rc)

    radius = int(round(thickness))
    if radius <= 0:
        return mask, np.zeros_like(mask)
    interior = ndi.binary_erosion(mask, structure=disk(radius), border_value=1)
    return interior, mask & ~interior


def assemble(
    hierarchy: AnnotationHierarchy,
    image_source: TileSource,
    feature_operator: FeatureOperator,
    boundary_strategy: BoundaryStrategy,
) -> Optional[SampleTable]:
    """Build the training table, or None when there is nothing to train.

    Parameters
    ----------
    hierarchy : AnnotationHierarchy
        Source of annotations; only those with a non-ignored class are used.
    image_source : TileSource
        Pixels the features are computed from.
    feature_operator : FeatureOperator
        Defines the working resolution and the feature columns.
    boundary_strategy : Skip, DerivedThickness or ClassifyAs
        How the band along each annotation's edge is labelled.

    Returns
    -------
    SampleTable or None
        None when no annotation contributes a single labelled pixel.
    """
    annotations = [a for a in hierarchy.annotations() if not is_ignored_class(a.path_class)]
    if not annotations:
        logger.info("No classified annotations - nothing to train")
        return None

    downsample = feature_operator.resolution.downsample
    width = scaled_size(image_source.width, downsample)
    height = scaled_size(image_source.height, downsample)
    thickness = boundary_strategy.thickness
    margin = int(math.ceil(thickness)) + 1

    names = {str(a.path_class) for a in annotations}
    boundary_class = boundary_strategy.boundary_class
    if boundary_class is not None and thickness > 0:
        names.add(str(boundary_class))
    label_map = {name: i for i, name in enumerate(sorted(names))}
    boundary_label = label_map[str(boundary_class)] if boundary_class is not None and thickness > 0 else UNLABELLED

    feature_names = tuple(feature_operator.channel_names)
    all_features, all_labels = [], []
    for obj in annotations:
        bounds = _working_bounds(obj, downsample, margin, width, height)
        cx0, cy0, cx1, cy1 = bounds
        if cx1 <= cx0 or cy1 <= cy0:
            logger.debug("Annotation %s lies outside the image", obj)
            continue

        interior, band = rasterize_annotation(obj, downsample, bounds, thickness)
        if not interior.any() and not (band.any() and boundary_label != UNLABELLED):
            logger.debug("Annotation %s has no pixels at %s", obj, feature_operator.resolution)
            continue

        labels = np.full(interior.shape, UNLABELLED, dtype=np.int32)
        labels[band] = boundary_label
        labels[interior] = label_map[str(obj.path_class)]

        features = feature_operator.compute(image_source, cx0, cy0, cx1 - cx0, cy1 - cy0)
        ds = xr.Dataset(
            {
                "features": (("y", "x", "feature"), features),
                "labels": (("y", "x"), labels),
            },
            coords={
                "y": np.arange(cy0, cy1),
                "x": np.arange(cx0, cx1),
                "feature": list(feature_names),
            },
        )
        assert_annotation_samples(ds)

        stacked = ds.stack(sample=("y", "x"))
        keep = stacked["labels"].values >= 0
        all_features.append(stacked["features"].transpose("sample", "feature").values[keep])
        all_labels.append(stacked["labels"].values[keep])

    if not all_labels or sum(len(l) for l in all_labels) == 0:
        logger.info("Annotations contain no labelled pixels at %s - nothing to train", feature_operator.resolution)
        return None

    table = SampleTable(
        features=np.concatenate(all_features).astype(np.float32, copy=False),
        labels=np.concatenate(all_labels).astype(np.int32, copy=False),
        label_map=label_map,
        feature_names=feature_names,
    )
    assert_sample_table(table)
    logger.info(
        "Assembled %d samples x %d features from %d annotations (%s)",
        table.n_samples, table.n_features, len(annotations), boundary_strategy,
    )
    return table
