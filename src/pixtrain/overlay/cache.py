"""Tile cache shared by the prediction and feature-display overlays.

Keys carry the tile address, the generation the tile was computed for and
the identity of the operator that produced it, so the two overlays never
see each other's tiles. Display settings such as opacity are not part of
the key.
"""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Hashable, Optional

import numpy as np

from pixtrain.imaging.tiles import TileRequest

__all__ = ['CacheKey', 'TileCache']

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheKey:
    owner: str
    tile: TileRequest
    generation: int
    operator: Hashable


class TileCache:
    """Thread-safe LRU of tile images.

    Parameters
    ----------
    max_tiles : int
        Least recently used tiles are evicted beyond this count.
    """

    def __init__(self, max_tiles: int = 256):
        if max_tiles < 1:
            raise ValueError(f"max_tiles must be >= 1, got {max_tiles}")
        self.max_tiles = max_tiles
        self._tiles: "OrderedDict[CacheKey, np.ndarray]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: CacheKey) -> Optional[np.ndarray]:
        with self._lock:
            image = self._tiles.get(key)
            if image is not None:
                self._tiles.move_to_end(key)
            return image

    def put(self, key: CacheKey, image: np.ndarray) -> None:
        with self._lock:
            self._tiles[key] = image
            self._tiles.move_to_end(key)
            while len(self._tiles) > self.max_tiles:
                evicted, _ = self._tiles.popitem(last=False)
                logger.debug("Evicted tile %s", evicted.tile)

    def invalidate_generation(self, owner: str, keep_generation: Optional[int] = None) -> int:
        """Drop every tile of ``owner`` not computed for ``keep_generation``."""
        with self._lock:
            stale = [k for k in self._tiles if k.owner == owner and k.generation != keep_generation]
            for k in stale:
                del self._tiles[k]
        if stale:
            logger.debug("Dropped %d %s tiles", len(stale), owner)
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._tiles.clear()

    def keys(self) -> list[CacheKey]:
        with self._lock:
            return list(self._tiles)

    def images(self, owner: str, generation: int) -> list[np.ndarray]:
        with self._lock:
            return [img for k, img in self._tiles.items() if k.owner == owner and k.generation == generation]

    def __len__(self):
        with self._lock:
            return len(self._tiles)

    def __contains__(self, key):
        with self._lock:
            return key in self._tiles
