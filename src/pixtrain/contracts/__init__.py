"""Pipeline contracts - fail-fast enforcement of stage invariants.

This package enforces semantic guarantees between pipeline stages.
Contracts fail immediately and loudly when a stage doesn't produce its
promised invariants.

Key principle:
- Pydantic validates config correctness
- Contracts validate pipeline correctness
- The coordinator decides what a failure means for the session
"""

from pixtrain.contracts.failure import ConfigurationError, ContractViolation, ConsistencyError
from pixtrain.contracts.base import require
from pixtrain.contracts.labels import assert_dense_label_map, assert_labels_in_map
from pixtrain.contracts.samples import assert_annotation_samples, assert_sample_table
from pixtrain.contracts.prediction import assert_prediction_tile

__all__ = [
    "ConfigurationError",
    "ContractViolation",
    "ConsistencyError",
    "require",
    "assert_dense_label_map",
    "assert_labels_in_map",
    "assert_annotation_samples",
    "assert_sample_table",
    "assert_prediction_tile",
]
