"""Prediction tile contract.

Enforces the shape of every tile a TrainedModel hands to the overlay.
"""

import numpy as np

from pixtrain.contracts.base import require


def assert_prediction_tile(image: np.ndarray, channel_type: str, n_classes: int) -> None:
    """Enforce prediction tile contract.

    Parameters
    ----------
    image : np.ndarray
        ``(H, W)`` uint8 class indices for classification output,
        ``(H, W, K)`` float32 probabilities otherwise.
    channel_type : str
        "classification" or "probability"
    n_classes : int
        Number of output classes K

    Raises
    ------
    ContractViolation
        If any invariant is violated
    """
    if channel_type == "classification":
        require(image.ndim == 2, f"Prediction contract violated: classification tile has {image.ndim} dims, expected 2")
        require(image.dtype == np.uint8, f"Prediction contract violated: classification dtype {image.dtype}, expected uint8")
        if image.size:
            require(
                int(image.max()) < n_classes,
                f"Prediction contract violated: class index {int(image.max())} >= {n_classes}"
            )
    else:
        require(image.ndim == 3, f"Prediction contract violated: probability tile has {image.ndim} dims, expected 3")
        require(
            image.shape[2] == n_classes,
            f"Prediction contract violated: {image.shape[2]} probability channels for {n_classes} classes"
        )
        require(image.dtype == np.float32, f"Prediction contract violated: probability dtype {image.dtype}, expected float32")
