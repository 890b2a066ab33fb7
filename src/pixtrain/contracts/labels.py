"""Label map contracts.

A label map assigns every class name an index. Indices must be dense in
[0, K) and every label used by a split must be one of them.
"""

import numpy as np

from pixtrain.contracts.base import require
from pixtrain.contracts.failure import ConsistencyError


def assert_dense_label_map(label_map: dict) -> None:
    """Label indices must be exactly 0..K-1.

    Raises
    ------
    ConsistencyError
        If the map is empty or has gaps or negative indices
    """
    indices = set(label_map.values())
    require(len(indices) > 0, "Label map is empty", ConsistencyError)
    require(
        indices == set(range(len(indices))),
        f"Label map is not dense: indices {sorted(indices)} for {len(indices)} labels",
        ConsistencyError,
    )


def assert_labels_in_map(labels: np.ndarray, n_classes: int, split: str) -> None:
    """Every label of a split must be a valid index for the fitted map.

    Raises
    ------
    ConsistencyError
        If a label is outside [0, n_classes)
    """
    if labels.size == 0:
        return
    lo, hi = int(labels.min()), int(labels.max())
    require(
        lo >= 0 and hi < n_classes,
        f"Labels of the {split} split span [{lo}, {hi}] but the label map has {n_classes} classes",
        ConsistencyError,
    )
