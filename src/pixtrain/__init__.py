"""`pixtrain` - interactive pixel classifier training with a live prediction overlay.

Subpackages:
- imaging: Resolutions, classes, annotation hierarchy, tile sources, feature operators
- training: Sample assembly, preprocessing, classifiers, trainer
- overlay: Tile cache, prediction and feature overlays, rendering
- pipeline: Training coordinator and its events
"""

__version__ = "0.1.0"
