"""Sample stage contracts.

Enforces the guarantees the Sample Assembler makes before a table is
handed to the trainer.
"""

import numpy as np
import xarray as xr

from pixtrain.contracts.base import require
from pixtrain.contracts.labels import assert_dense_label_map, assert_labels_in_map


def assert_annotation_samples(ds: xr.Dataset) -> None:
    """Enforce the per-annotation raster contract.

    Called after one annotation has been rasterized and its features
    computed, before its pixels are stacked into samples.

    Raises
    ------
    ContractViolation
        If any invariant is violated
    """
    require("features" in ds.data_vars, "Sample contract violated: missing 'features' variable")
    require("labels" in ds.data_vars, "Sample contract violated: missing 'labels' variable")
    require(
        ds["features"].dims == ("y", "x", "feature"),
        f"Sample contract violated: features dims {ds['features'].dims}, expected ('y', 'x', 'feature')"
    )
    require(
        ds["labels"].dims == ("y", "x"),
        f"Sample contract violated: labels dims {ds['labels'].dims}, expected ('y', 'x')"
    )
    require(
        np.issubdtype(ds["labels"].dtype, np.integer),
        f"Sample contract violated: labels dtype {ds['labels'].dtype} is not integer"
    )


def assert_sample_table(table) -> None:
    """Enforce the SampleTable contract.

    Parameters
    ----------
    table : SampleTable
        Output of ``assemble``

    Raises
    ------
    ContractViolation
        If shapes or dtypes are wrong
    ConsistencyError
        If the label map is not dense or a label falls outside it
    """
    features = table.features
    labels = table.labels
    require(features.ndim == 2, f"Sample contract violated: features have {features.ndim} dims, expected 2")
    require(features.dtype == np.float32, f"Sample contract violated: features dtype {features.dtype}, expected float32")
    require(labels.ndim == 1, f"Sample contract violated: labels have {labels.ndim} dims, expected 1")
    require(
        features.shape[0] == labels.shape[0],
        f"Sample contract violated: {features.shape[0]} feature rows but {labels.shape[0]} labels"
    )
    require(
        len(table.feature_names) == features.shape[1],
        f"Sample contract violated: {len(table.feature_names)} feature names for {features.shape[1]} columns"
    )
    require(bool(np.all(np.isfinite(features))), "Sample contract violated: non-finite feature values")
    assert_dense_label_map(table.label_map)
    assert_labels_in_map(labels, len(set(table.label_map.values())), "samples")
