"""Asynchronous tile overlays.

An overlay answers ``request(tile)`` immediately with the cached image or
None. Missing tiles are queued for a pool of worker threads; finished
tiles go into the shared TileCache and are announced as ``TileReady``
so the interactive thread can repaint.

Every scheduled job remembers the generation it was created for. A result
is stored only if that generation is still the overlay's current one when
the job finishes; otherwise it is dropped. Installing a new payload at a
new generation removes the overlay's older tiles from the cache under the
same lock, so a stale tile can never reappear.

Overlay lifecycle: stopped -> running -> stopped. Once stopped after
running, an overlay cannot be restarted.
"""

import logging
import queue
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Hashable, Optional

import cv2
import numpy as np

from pixtrain.contracts import require
from pixtrain.imaging.hierarchy import AnnotationHierarchy
from pixtrain.imaging.resolution import scaled_size
from pixtrain.imaging.tiles import TileGrid, TileRequest, TileSource
from pixtrain.overlay.cache import CacheKey, TileCache
from pixtrain.training.model import CLASSIFICATION, TrainedModel

__all__ = [
    'TileReady',
    'OverlayState',
    'TileState',
    'TileWorker',
    'TileOverlay',
    'PyramidOverlay',
    'PixelClassificationOverlay',
    'FeatureDisplayOverlay',
]

logger = logging.getLogger(__name__)

WHOLE_IMAGE = "whole_image"
ANNOTATIONS_ONLY = "annotations_only"


@dataclass(frozen=True)
class TileReady:
    """A tile finished computing for ``generation``."""
    tile: TileRequest
    generation: int
    owner: str = ""


class OverlayState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class TileState(str, Enum):
    REQUESTED = "requested"
    COMPUTING = "computing"
    CACHED = "cached"
    FAILED = "failed"


@dataclass(frozen=True)
class _TileJob:
    key: CacheKey
    payload: object


class TileWorker(threading.Thread):
    """Worker thread computing queued tiles for one overlay.

    Exits when its stop event is set or a None sentinel is received.
    """

    def __init__(self, overlay: "TileOverlay", jobs: queue.Queue, name: str):
        super().__init__(daemon=True, name=name)
        self.overlay = overlay
        self.jobs = jobs
        self._stop_event = threading.Event()

    def stop(self):
        """Signal worker to stop."""
        self._stop_event.set()

    def stopped(self):
        return self._stop_event.is_set()

    def run(self):
        logger.debug("%s started", self.name)
        while not self.stopped():
            try:
                job = self.jobs.get(timeout=1)
            except queue.Empty:
                continue

            try:
                if job is None:
                    break
                self.overlay._process(job)
            except Exception:
                logger.exception("Tile worker error")
            finally:
                self.jobs.task_done()
        logger.debug("%s stopped", self.name)


class TileOverlay:
    """Base overlay: scheduling, generations and caching.

    Subclasses provide ``grid_for(payload)``, ``operator_key(payload)``
    and ``compute_tile(payload, grid, key)``; ``key.generation`` is the
    generation the job was scheduled for.

    Parameters
    ----------
    source : TileSource
        Image the tiles are computed from.
    cache : TileCache
        Shared with the other overlays.
    tile_size : int
        Tile edge length in pixels of the tile's level.
    max_workers : int
        Worker threads started by ``start``.
    hierarchy : AnnotationHierarchy, optional
        Needed for the annotations-only region.
    on_tile_ready : callable, optional
        Called with each ``TileReady`` from the worker thread.
    """

    owner = "overlay"

    def __init__(
        self,
        source: TileSource,
        cache: TileCache,
        tile_size: int = 512,
        max_workers: int = 4,
        hierarchy: Optional[AnnotationHierarchy] = None,
        on_tile_ready: Optional[Callable[[TileReady], None]] = None,
    ):
        self.source = source
        self.cache = cache
        self.tile_size = tile_size
        self.max_workers = max_workers
        self.hierarchy = hierarchy
        self.on_tile_ready = on_tile_ready
        self.notifications: queue.Queue = queue.Queue()
        self.opacity = 1.0
        self.discarded = 0

        self._lock = threading.RLock()
        self._state = OverlayState.STOPPED
        self._has_run = False
        self._live = True
        self._use_annotation_mask = False
        self._generation = 0
        self._payload = None
        self._grid: Optional[TileGrid] = None
        self._operator_key: Optional[Hashable] = None
        self._tiles: dict[CacheKey, TileState] = {}
        self._jobs: queue.Queue = queue.Queue()
        self._workers: list[TileWorker] = []

    # -- subclass hooks ---------------------------------------------------

    def grid_for(self, payload) -> TileGrid:
        raise NotImplementedError

    def operator_key(self, payload) -> Hashable:
        raise NotImplementedError

    def compute_tile(self, payload, grid: TileGrid, key: CacheKey) -> np.ndarray:
        raise NotImplementedError

    # -- lifecycle --------------------------------------------------------

    @property
    def state(self) -> OverlayState:
        return self._state

    def start(self) -> "TileOverlay":
        with self._lock:
            if self._state == OverlayState.RUNNING:
                return self
            if self._has_run:
                raise RuntimeError(f"{type(self).__name__} was stopped and cannot be restarted")
            self._state = OverlayState.RUNNING
            self._has_run = True
            self._workers = [
                TileWorker(self, self._jobs, f"{self.owner}-worker-{i}")
                for i in range(self.max_workers)
            ]
        for w in self._workers:
            w.start()
        logger.info("%s started with %d workers", type(self).__name__, self.max_workers)
        return self

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the workers. Queued jobs are abandoned; cached tiles stay."""
        with self._lock:
            if self._state != OverlayState.RUNNING:
                return
            self._state = OverlayState.STOPPED
            workers = list(self._workers)

        for w in workers:
            w.stop()
        self._drain()
        for _ in workers:
            self._jobs.put(None)
        for w in workers:
            w.join(timeout=timeout)
            if w.is_alive():
                logger.warning("%s did not stop within %.1fs", w.name, timeout)
        self._drain()
        with self._lock:
            self._tiles.clear()
        logger.info("%s stopped", type(self).__name__)

    def _drain(self) -> None:
        while True:
            try:
                self._jobs.get_nowait()
            except queue.Empty:
                break
            self._jobs.task_done()

    def wait_idle(self) -> None:
        """Block until every queued tile has been processed."""
        self._jobs.join()

    # -- model / generation ----------------------------------------------

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def payload(self):
        return self._payload

    @property
    def grid(self) -> Optional[TileGrid]:
        return self._grid

    def install(self, payload, generation: int) -> None:
        """Swap to ``payload`` (None to show nothing) at ``generation``.

        Tiles of every other generation are removed from the cache and
        in-flight jobs for them will be discarded when they finish.
        """
        with self._lock:
            require(
                generation >= self._generation,
                f"Generation must not decrease: {generation} < {self._generation}",
            )
            self._generation = generation
            self._payload = payload
            self._grid = self.grid_for(payload) if payload is not None else None
            self._operator_key = self.operator_key(payload) if payload is not None else None
            self._tiles = {k: s for k, s in self._tiles.items() if k.generation == generation}
            self.cache.invalidate_generation(self.owner, keep_generation=generation)
        logger.debug("%s installed generation %d", type(self).__name__, generation)

    def uninstall(self, generation: int) -> None:
        self.install(None, generation)

    # -- display settings -------------------------------------------------

    @property
    def live(self) -> bool:
        return self._live

    def set_live(self, live: bool) -> None:
        """Suspend or resume scheduling; cached tiles are kept either way."""
        self._live = bool(live)

    @property
    def use_annotation_mask(self) -> bool:
        return self._use_annotation_mask

    def set_use_annotation_mask(self, use_mask: bool) -> None:
        self._use_annotation_mask = bool(use_mask)

    def set_region(self, region: str) -> None:
        self.set_use_annotation_mask(region == ANNOTATIONS_ONLY)

    def set_opacity(self, opacity: float) -> None:
        self.opacity = float(min(1.0, max(0.0, opacity)))

    # -- tiles ------------------------------------------------------------

    def _key(self, tile: TileRequest) -> CacheKey:
        return CacheKey(self.owner, tile, self._generation, self._operator_key)

    def _tile_has_annotation(self, grid: TileGrid, tile: TileRequest) -> bool:
        if self.hierarchy is None:
            return False
        x0, y0, x1, y1 = grid.bounds(tile)
        return bool(self.hierarchy.annotations_in_bounds(x0, y0, x1, y1))

    def request(self, tile: TileRequest) -> Optional[np.ndarray]:
        """Cached tile image, or None; never blocks on computation.

        A missing tile is scheduled unless it is already queued or
        computing, live mode is off, or the tile lies outside every
        annotation while the annotation mask is on.
        """
        with self._lock:
            grid = self._grid
            running = self._state == OverlayState.RUNNING
        if grid is None or not grid.contains(tile):
            return None
        if self._use_annotation_mask and not self._tile_has_annotation(grid, tile):
            return None

        with self._lock:
            if grid is not self._grid:
                return None
            key = self._key(tile)
            image = self.cache.get(key)
            if image is not None:
                return image
            if not running or not self._live or key in self._tiles:
                return None
            self._tiles[key] = TileState.REQUESTED
            self._jobs.put(_TileJob(key, self._payload))
        return None

    def tile_state(self, tile: TileRequest) -> Optional[TileState]:
        with self._lock:
            if self._grid is None:
                return None
            key = self._key(tile)
            if key in self.cache:
                return TileState.CACHED
            return self._tiles.get(key)

    def cached_images(self) -> list[np.ndarray]:
        return self.cache.images(self.owner, self._generation)

    def _process(self, job: _TileJob) -> None:
        key = job.key
        with self._lock:
            if key.generation != self._generation or self._state != OverlayState.RUNNING:
                self._tiles.pop(key, None)
                self.discarded += 1
                logger.debug("Skipping tile %s of generation %d", key.tile, key.generation)
                return
            self._tiles[key] = TileState.COMPUTING
            grid = self._grid

        try:
            image = self.compute_tile(job.payload, grid, key)
        except Exception:
            logger.exception("Failed to compute tile %s", key.tile)
            with self._lock:
                if key in self._tiles:
                    self._tiles[key] = TileState.FAILED
            return

        with self._lock:
            self._tiles.pop(key, None)
            if key.generation != self._generation:
                self.discarded += 1
                logger.debug(
                    "Discarding tile %s computed for generation %d (current %d)",
                    key.tile, key.generation, self._generation,
                )
                return
            self.cache.put(key, image)

        event = TileReady(key.tile, key.generation, self.owner)
        self.notifications.put(event)
        if self.on_tile_ready is not None:
            self.on_tile_ready(event)


def _downsample_tile(image: np.ndarray, shape: tuple[int, int], interpolation: int) -> np.ndarray:
    h, w = shape
    if image.shape[:2] == (h, w):
        return image
    out = cv2.resize(image, (w, h), interpolation=interpolation)
    if image.ndim == 3 and out.ndim == 2:
        out = out[:, :, np.newaxis]
    return out


def _working_block(grid: TileGrid, tile: TileRequest, downsample: float) -> tuple[int, int, int, int]:
    """(x, y, width, height) of a tile in pixels of ``downsample``."""
    x0, y0, x1, y1 = grid.bounds(tile)
    wx = int(round(x0 / downsample))
    wy = int(round(y0 / downsample))
    return wx, wy, scaled_size(int(round(x1 - x0)), downsample), scaled_size(int(round(y1 - y0)), downsample)


def _children(grid: TileGrid, tile: TileRequest) -> list[list[TileRequest]]:
    """Rows of the (up to four) next-finer tiles covering ``tile``."""
    rows = []
    for dy in (0, 1):
        row = [
            TileRequest(tile.level - 1, 2 * tile.x + dx, 2 * tile.y + dy, tile.z, tile.t)
            for dx in (0, 1)
        ]
        row = [child for child in row if grid.contains(child)]
        if row:
            rows.append(row)
    return rows


class PyramidOverlay(TileOverlay):
    """Overlay whose coarser tiles are built from finer ones.

    Only level-0 tiles are computed from the image, each at most
    ``tile_size`` pixels square in the payload's resolution. A level-l
    tile is the shrunken mosaic of its four level-(l-1) children; children
    already cached for the job's generation are reused and newly computed
    ones are cached while that generation is current.

    Subclasses provide ``compute_base_tile(payload, grid, tile)`` and
    ``interpolation(payload)``.
    """

    def compute_base_tile(self, payload, grid: TileGrid, tile: TileRequest) -> np.ndarray:
        raise NotImplementedError

    def interpolation(self, payload) -> int:
        return cv2.INTER_AREA

    def compute_tile(self, payload, grid: TileGrid, key: CacheKey) -> np.ndarray:
        tile = key.tile
        if tile.level == 0:
            return self.compute_base_tile(payload, grid, tile)
        mosaic = np.concatenate([
            np.concatenate([self._child_tile(payload, grid, key, child) for child in row], axis=1)
            for row in _children(grid, tile)
        ], axis=0)
        return _downsample_tile(mosaic, grid.shape(tile), self.interpolation(payload))

    def _child_tile(self, payload, grid: TileGrid, parent: CacheKey, tile: TileRequest) -> np.ndarray:
        key = CacheKey(parent.owner, tile, parent.generation, parent.operator)
        image = self.cache.get(key)
        if image is not None:
            return image
        image = self.compute_tile(payload, grid, key)
        with self._lock:
            if key.generation == self._generation:
                self.cache.put(key, image)
        return image


class PixelClassificationOverlay(PyramidOverlay):
    """Prediction tiles of an installed TrainedModel.

    Level 0 of the grid is the model's resolution. Coarser levels are
    shrunk from finer tiles: nearest neighbour for class indices, area
    averaging for probabilities.
    """

    owner = "classification"

    def grid_for(self, model: TrainedModel) -> TileGrid:
        return TileGrid(self.source.width, self.source.height, self.tile_size, model.resolution.downsample)

    def operator_key(self, model: TrainedModel) -> Hashable:
        return model.feature_operator

    def interpolation(self, model: TrainedModel) -> int:
        return cv2.INTER_NEAREST if model.channel_type == CLASSIFICATION else cv2.INTER_AREA

    def compute_base_tile(self, model: TrainedModel, grid: TileGrid, tile: TileRequest) -> np.ndarray:
        x, y, w, h = _working_block(grid, tile, model.resolution.downsample)
        image = model.predict_region(self.source, x, y, w, h)
        return _downsample_tile(image, grid.shape(tile), self.interpolation(model))


class FeatureDisplayOverlay(PyramidOverlay):
    """One channel of a feature operator, for inspecting features.

    The payload is ``(feature_operator, channel_name)``.
    """

    owner = "feature"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.display_min = 0.0
        self.display_max = 1.0

    def grid_for(self, payload) -> TileGrid:
        operator, _ = payload
        return TileGrid(self.source.width, self.source.height, self.tile_size, operator.resolution.downsample)

    def operator_key(self, payload) -> Hashable:
        operator, channel = payload
        return (operator, channel)

    def compute_base_tile(self, payload, grid: TileGrid, tile: TileRequest) -> np.ndarray:
        operator, channel = payload
        index = operator.channel_names.index(channel)
        x, y, w, h = _working_block(grid, tile, operator.resolution.downsample)
        image = np.ascontiguousarray(operator.compute(self.source, x, y, w, h)[:, :, index])
        return _downsample_tile(image, grid.shape(tile), cv2.INTER_AREA)

    def set_display_range(self, display_min: float, display_max: float) -> None:
        self.display_min = float(display_min)
        self.display_max = float(display_max)

    def auto_range(self) -> Optional[tuple[float, float]]:
        """Set the display range to the 1st/99th percentiles of the cached tiles."""
        images = self.cached_images()
        if not images:
            return None
        values = np.concatenate([img.ravel() for img in images])
        values = values[np.isfinite(values)]
        if values.size == 0:
            return None
        lo, hi = np.percentile(values, [1, 99])
        if hi <= lo:
            hi = lo + 1.0
        self.set_display_range(lo, hi)
        return self.display_min, self.display_max
