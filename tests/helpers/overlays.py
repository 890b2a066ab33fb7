import threading

import numpy as np

from pixtrain.imaging.tiles import TileGrid
from pixtrain.overlay.overlay import TileOverlay


class ConstantOverlay(TileOverlay):
    """Tiles filled with the payload value.

    ``gate`` can be cleared to hold every computation until it is set
    again; ``started`` is set when a computation begins.
    """

    owner = "constant"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.computed = []
        self.started = threading.Event()
        self.gate = threading.Event()
        self.gate.set()
        self.fail = False

    def grid_for(self, payload):
        return TileGrid(self.source.width, self.source.height, self.tile_size)

    def operator_key(self, payload):
        return ("constant", payload)

    def compute_tile(self, payload, grid, key):
        tile = key.tile
        self.started.set()
        if not self.gate.wait(timeout=10):
            raise TimeoutError("gate never opened")
        if self.fail:
            raise RuntimeError("tile failed")
        self.computed.append((tile, payload))
        return np.full(grid.shape(tile), payload, dtype=np.float32)
