"""Image tile sources and the overlay tile grid.

Coordinates
-----------
Regions passed to a TileSource are ``(x, y, width, height)`` in
full-resolution pixels. ``read_scaled`` works in pixels of a requested
downsample and handles everything in between: choosing a pyramid level,
resizing with OpenCV, and edge-padding the parts that fall outside the
image so filters see plausible context at the borders.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

import cv2
import numpy as np

from pixtrain.imaging.resolution import pyramid_level_for, scaled_size

__all__ = [
    'TileSource',
    'ArrayTileSource',
    'TileRequest',
    'TileGrid',
    'read_scaled',
]

logger = logging.getLogger(__name__)


class TileSource(Protocol):
    """Anything that can hand out pixels of a (possibly huge) image."""

    width: int
    height: int
    channel_names: tuple[str, ...]
    downsamples: tuple[float, ...]

    def fetch_tile(self, level: int, region: tuple[int, int, int, int]) -> np.ndarray:
        """Pixels of ``region`` at pyramid ``level``, shape (h, w, C)."""
        ...


class ArrayTileSource:
    """In-memory TileSource with a 2x pyramid built with OpenCV.

    Parameters
    ----------
    image : np.ndarray
        ``(H, W)`` or ``(H, W, C)`` pixel array at full resolution.
    channel_names : sequence of str, optional
        Defaults to Red/Green/Blue for 3-channel images, otherwise
        "Channel 1".."Channel C".
    min_level_size : int
        Stop adding pyramid levels once the shorter side would drop below this.
    """

    def __init__(self, image: np.ndarray, channel_names: Optional[Sequence[str]] = None, min_level_size: int = 64):
        if image.ndim == 2:
            image = image[:, :, np.newaxis]
        if image.ndim != 3:
            raise ValueError(f"Expected a (H, W) or (H, W, C) image, got shape {image.shape}")

        self.height, self.width, n_channels = image.shape
        if channel_names is None:
            if n_channels == 3:
                channel_names = ("Red", "Green", "Blue")
            else:
                channel_names = tuple(f"Channel {i + 1}" for i in range(n_channels))
        if len(channel_names) != n_channels:
            raise ValueError(f"{len(channel_names)} channel names for {n_channels} channels")
        self.channel_names = tuple(channel_names)

        levels = [image]
        downsamples = [1.0]
        while min(levels[-1].shape[:2]) // 2 >= min_level_size:
            prev = levels[-1]
            h, w = prev.shape[0] // 2, prev.shape[1] // 2
            level = cv2.resize(prev, (w, h), interpolation=cv2.INTER_AREA)
            if level.ndim == 2:
                level = level[:, :, np.newaxis]
            levels.append(level)
            downsamples.append(downsamples[-1] * 2)
        self._levels = levels
        self.downsamples = tuple(downsamples)
        logger.debug("Built %d pyramid levels for %dx%d image", len(levels), self.width, self.height)

    @property
    def n_channels(self) -> int:
        return len(self.channel_names)

    def fetch_tile(self, level: int, region: tuple[int, int, int, int]) -> np.ndarray:
        x, y, w, h = region
        d = self.downsamples[level]
        arr = self._levels[level]
        x0 = max(0, int(math.floor(x / d)))
        y0 = max(0, int(math.floor(y / d)))
        x1 = min(arr.shape[1], int(math.ceil((x + w) / d)))
        y1 = min(arr.shape[0], int(math.ceil((y + h) / d)))
        return arr[y0:y1, x0:x1].copy()


def _resize(arr: np.ndarray, width: int, height: int) -> np.ndarray:
    if arr.shape[1] == width and arr.shape[0] == height:
        return arr
    shrinking = width < arr.shape[1] or height < arr.shape[0]
    out = cv2.resize(arr, (width, height), interpolation=cv2.INTER_AREA if shrinking else cv2.INTER_LINEAR)
    if out.ndim == 2:
        out = out[:, :, np.newaxis]
    return out


def read_scaled(source: TileSource, downsample: float, x: int, y: int, width: int, height: int) -> np.ndarray:
    """Read a ``width`` x ``height`` block at ``downsample``, as float32 (h, w, C).

    ``x``/``y`` are the top-left corner in pixels of that downsample and may
    be negative or run past the image; those parts are edge-padded.
    """
    n_channels = len(source.channel_names)
    fx0, fy0 = x * downsample, y * downsample
    fx1, fy1 = (x + width) * downsample, (y + height) * downsample

    cx0, cy0 = max(0.0, fx0), max(0.0, fy0)
    cx1, cy1 = min(float(source.width), fx1), min(float(source.height), fy1)
    if cx1 <= cx0 or cy1 <= cy0:
        return np.zeros((height, width, n_channels), dtype=np.float32)

    level = pyramid_level_for(source.downsamples, downsample)
    region = (int(math.floor(cx0)), int(math.floor(cy0)),
              int(math.ceil(cx1 - math.floor(cx0))), int(math.ceil(cy1 - math.floor(cy0))))
    raw = source.fetch_tile(level, region).astype(np.float32, copy=False)
    if raw.ndim == 2:
        raw = raw[:, :, np.newaxis]

    inner_w = min(width, scaled_size(int(round(cx1 - cx0)), downsample))
    inner_h = min(height, scaled_size(int(round(cy1 - cy0)), downsample))
    inner = _resize(raw, inner_w, inner_h)

    left = min(width - inner_w, max(0, int(round((cx0 - fx0) / downsample))))
    top = min(height - inner_h, max(0, int(round((cy0 - fy0) / downsample))))
    right = width - inner_w - left
    bottom = height - inner_h - top
    if left or top or right or bottom:
        inner = np.pad(inner, ((top, bottom), (left, right), (0, 0)), mode="edge")
    return inner


@dataclass(frozen=True, order=True)
class TileRequest:
    """Address of one overlay tile: pyramid level and tile indices."""
    level: int
    x: int
    y: int
    z: int = 0
    t: int = 0


class TileGrid:
    """Fixed-size tiles over a pyramid whose level 0 is ``base_downsample``.

    Level ``l`` has downsample ``base_downsample * 2**l``; a tile at that
    level is ``tile_size`` pixels of that downsample, clipped to the image.
    """

    def __init__(self, width: int, height: int, tile_size: int, base_downsample: float = 1.0, n_levels: Optional[int] = None):
        self.width = width
        self.height = height
        self.tile_size = tile_size
        self.base_downsample = float(base_downsample)
        if n_levels is None:
            n_levels = 1
            while max(width, height) / self.downsample(n_levels - 1) > tile_size:
                n_levels += 1
        self.n_levels = n_levels

    def downsample(self, level: int) -> float:
        return self.base_downsample * (2 ** level)

    def bounds(self, request: TileRequest) -> tuple[float, float, float, float]:
        """Full-resolution (x0, y0, x1, y1) covered by the tile, clipped to the image."""
        span = self.tile_size * self.downsample(request.level)
        x0, y0 = request.x * span, request.y * span
        return x0, y0, min(float(self.width), x0 + span), min(float(self.height), y0 + span)

    def shape(self, request: TileRequest) -> tuple[int, int]:
        """(height, width) of the tile image in pixels of its level."""
        x0, y0, x1, y1 = self.bounds(request)
        d = self.downsample(request.level)
        return scaled_size(int(round(y1 - y0)), d), scaled_size(int(round(x1 - x0)), d)

    def contains(self, request: TileRequest) -> bool:
        if not 0 <= request.level < self.n_levels or request.x < 0 or request.y < 0:
            return False
        x0, y0, _, _ = self.bounds(request)
        return x0 < self.width and y0 < self.height

    def tile_at(self, level: int, x: float, y: float, z: int = 0, t: int = 0) -> Optional[TileRequest]:
        """Tile containing the full-resolution point (x, y), or None outside the image."""
        if not (0 <= x < self.width and 0 <= y < self.height):
            return None
        span = self.tile_size * self.downsample(level)
        return TileRequest(level, int(x // span), int(y // span), z, t)

    def tiles_for_region(self, level: int, x0: float, y0: float, x1: float, y1: float, z: int = 0, t: int = 0) -> list[TileRequest]:
        span = self.tile_size * self.downsample(level)
        x0, y0 = max(0.0, x0), max(0.0, y0)
        x1, y1 = min(float(self.width), x1), min(float(self.height), y1)
        if x1 <= x0 or y1 <= y0:
            return []
        return [
            TileRequest(level, tx, ty, z, t)
            for ty in range(int(y0 // span), int(math.ceil(y1 / span)))
            for tx in range(int(x0 // span), int(math.ceil(x1 / span)))
        ]
