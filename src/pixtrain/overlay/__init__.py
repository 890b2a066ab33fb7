"""Tile cache, asynchronous overlays and rendering."""

from pixtrain.overlay.cache import CacheKey, TileCache
from pixtrain.overlay.overlay import (
    TileReady,
    OverlayState,
    TileState,
    TileOverlay,
    PixelClassificationOverlay,
    FeatureDisplayOverlay,
)
from pixtrain.overlay.render import render_tile, render_feature, results_string

__all__ = [
    'CacheKey',
    'TileCache',
    'TileReady',
    'OverlayState',
    'TileState',
    'TileOverlay',
    'PixelClassificationOverlay',
    'FeatureDisplayOverlay',
    'render_tile',
    'render_feature',
    'results_string',
]
