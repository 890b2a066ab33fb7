"""Formal pipeline invariants.

This file documents what each stage MUST produce. This is architecture, not code.
Use this file as a reviewer anchor and system reference.
"""

PIPELINE_INVARIANTS = {
    "features": [
        "Operator output is (H, W, F) float32 with F == len(channel_names)",
        "Appending a transform returns a new operator; the original is unchanged",
        "Equal transform chains at equal resolution compare and hash equal",
    ],

    "samples": [
        "Features are (N, F) float32, labels (N,) integer, N rows each",
        "Label indices are dense in [0, K) and follow sorted class-name order",
        "Interior pixels keep their annotation's class for every boundary strategy",
        "Ignored classes (trailing '*') never contribute samples",
        "No usable annotation gives None (nothing to train), not an error",
    ],

    "preprocessing": [
        "Fit once per training run, from the train split only",
        "apply() returns a new array and never mutates its input",
        "does_something() is False when normalization is none and PCA is off",
    ],

    "training": [
        "Train/test split is a seeded permutation, reproducible for equal seeds",
        "Reweighting gives weight(c) * n_c == n_train for every observed class",
        "Report says whether accuracy is held-out or on the training set",
        "Test labels outside the label map raise ConsistencyError",
    ],

    "prediction": [
        "Classification tiles are (H, W) uint8 class indices",
        "Probability tiles are (H, W, K) float32 over every class in label order",
    ],

    "cache": [
        "A tile is installed only if its generation is still current",
        "At most one outstanding computation per (tile, generation)",
        "After a generation bump no stale tile is ever visible",
        "Display-only settings (opacity) never enter a cache key",
    ],
}

# Which stages are optional vs required for a training run
STAGE_REQUIREMENTS = {
    "features": "REQUIRED",
    "samples": "REQUIRED",
    "preprocessing": "OPTIONAL",  # Skipped when it does nothing
    "training": "REQUIRED",
    "prediction": "OPTIONAL",     # Only while an overlay is running
    "cache": "OPTIONAL",
}
