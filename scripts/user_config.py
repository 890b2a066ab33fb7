"""pixtrain User Configuration.

This is the user-facing configuration file. Modify settings here to customize
the training session. Expert defaults live in pixtrain.schemas.param.

Usage:
    python scripts/run_pixel_classifier.py image.png annotations.geojson --config scripts/user_config.py
    python scripts/run_pixel_classifier.py image.png annotations.geojson --config scripts/user_config.py --classifier ann_mlp
"""

CONFIG = {
    # ========================================================================
    # OUTPUT
    # ========================================================================
    "BASE_DIR": "./pixtrain_output",  # All outputs go here
    "LOG_LEVEL": "INFO",

    # ========================================================================
    # RESOLUTION
    # ========================================================================
    "RESOLUTION": "Moderate",  # Full, Very high, High, Moderate, Low, Very low, Extremely low, Custom
    "PIXEL_SIZE": None,        # Full-resolution pixel size (µm); None for uncalibrated images
    "PIXEL_UNITS": "px",       # "µm" when PIXEL_SIZE is set

    # ========================================================================
    # FEATURES
    # ========================================================================
    "CHANNELS": None,          # None = all channels, or e.g. ["Red", "Green"]
    "SIGMAS": [1.0, 2.0],      # Smoothing scales in working pixels
    "FEATURES": [
        "gaussian",
        "gradient_magnitude",
        "laplacian_of_gaussian",
    ],

    # ========================================================================
    # CLASSIFIER
    # ========================================================================
    "CLASSIFIER": "rtrees",    # rtrees, ann_mlp, logistic_regression, knearest, majority
    "OUTPUT_TYPE": "classification",  # or "probability"

    # ========================================================================
    # TRAINING
    # ========================================================================
    "MAX_SAMPLES": 100000,     # 0 = use every sample for training
    "RNG_SEED": 100,
    "REWEIGHT_SAMPLES": False,

    # ========================================================================
    # PREPROCESSING
    # ========================================================================
    "NORMALIZATION": "none",   # none, mean_variance, min_max
    "PCA_RETAINED_VARIANCE": 0,  # 0 disables PCA; otherwise in (0, 1]

    # ========================================================================
    # ANNOTATION BOUNDARIES
    # ========================================================================
    "BOUNDARY_STRATEGY": "skip",  # skip, derived, classify
    "BOUNDARY_THICKNESS": 1.0,    # Working-resolution pixels
    "BOUNDARY_CLASS": None,       # Required for "classify"

    # ========================================================================
    # OVERLAY
    # ========================================================================
    "LIVE_PREDICTION": False,
    "REGION": "whole_image",   # or "annotations_only"
}
