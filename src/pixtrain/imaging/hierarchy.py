"""In-memory object hierarchy with change events.

The trainer only reads annotations from the hierarchy; everything else
(adding objects, reclassifying, measurements) happens elsewhere and is
announced to listeners as a HierarchyEvent.
"""

import itertools
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

import numpy as np

from pixtrain.imaging.classes import PathClass

__all__ = [
    'ROI',
    'PathObject',
    'HierarchyEvent',
    'AnnotationHierarchy',
]

logger = logging.getLogger(__name__)

_ids = itertools.count(1)


@dataclass(frozen=True, eq=False)
class ROI:
    """Closed polygon in full-resolution image pixel coordinates (x, y)."""
    vertices: np.ndarray
    z: int = 0
    t: int = 0

    def __post_init__(self):
        vertices = np.asarray(self.vertices, dtype=np.float64).reshape(-1, 2)
        if len(vertices) < 3:
            raise ValueError(f"ROI needs at least 3 vertices, got {len(vertices)}")
        object.__setattr__(self, "vertices", vertices)

    @classmethod
    def rectangle(cls, x: float, y: float, width: float, height: float, z: int = 0, t: int = 0) -> "ROI":
        return cls(np.array([[x, y], [x + width, y], [x + width, y + height], [x, y + height]]), z, t)

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """(x_min, y_min, x_max, y_max)."""
        x_min, y_min = self.vertices.min(axis=0)
        x_max, y_max = self.vertices.max(axis=0)
        return float(x_min), float(y_min), float(x_max), float(y_max)

    @property
    def centroid(self) -> tuple[float, float]:
        x, y = self.vertices.mean(axis=0)
        return float(x), float(y)

    def intersects_bounds(self, x0: float, y0: float, x1: float, y1: float) -> bool:
        bx0, by0, bx1, by1 = self.bounds
        return bx0 < x1 and bx1 > x0 and by0 < y1 and by1 > y0


@dataclass(eq=False)
class PathObject:
    """Annotation or detection with an optional class."""
    roi: ROI
    path_class: Optional[PathClass] = None
    kind: str = "annotation"
    measurements: dict = field(default_factory=dict)
    object_id: int = field(default_factory=lambda: next(_ids))

    @property
    def is_annotation(self) -> bool:
        return self.kind == "annotation"

    @property
    def is_detection(self) -> bool:
        return self.kind == "detection"

    def __repr__(self):
        return f"PathObject({self.kind}, {self.path_class}, id={self.object_id})"


@dataclass(frozen=True)
class HierarchyEvent:
    """What changed in the hierarchy."""
    is_structural: bool = False
    is_classification: bool = False
    is_measurement_only: bool = False
    is_changing: bool = False
    changed_objects: tuple = ()

    @property
    def touches_classified_annotation(self) -> bool:
        return any(o.is_annotation for o in self.changed_objects) and (
            self.is_classification or any(o.path_class is not None for o in self.changed_objects)
        )


class AnnotationHierarchy:
    """Thread-safe flat collection of PathObjects with listeners.

    Listeners are called synchronously on the thread that made the change.
    Inside ``changing()`` every event is flagged ``is_changing`` and a
    single structural event is fired once the block exits.
    """

    def __init__(self, objects: Iterable[PathObject] = ()):
        self._objects: list[PathObject] = list(objects)
        self._listeners: list[Callable[[HierarchyEvent], None]] = []
        self._lock = threading.RLock()
        self._changing = 0
        self._pending: list[PathObject] = []

    def add_listener(self, listener: Callable[[HierarchyEvent], None]) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[HierarchyEvent], None]) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _fire(self, **kwargs) -> None:
        with self._lock:
            changed = tuple(kwargs.get("changed_objects", ()))
            if self._changing:
                self._pending.extend(changed)
            event = HierarchyEvent(**{**kwargs, "changed_objects": changed, "is_changing": self._changing > 0})
            listeners = list(self._listeners)
        for listener in listeners:
            listener(event)

    @contextmanager
    def changing(self):
        """Group many edits into one structural event."""
        with self._lock:
            self._changing += 1
        try:
            yield self
        finally:
            with self._lock:
                self._changing -= 1
                done = self._changing == 0
                pending = tuple(dict.fromkeys(self._pending)) if done else ()
                if done:
                    self._pending = []
            if done:
                self._fire(is_structural=True, changed_objects=pending)

    # -- reading ----------------------------------------------------------

    def objects(self) -> list[PathObject]:
        with self._lock:
            return list(self._objects)

    def annotations(self) -> list[PathObject]:
        return [o for o in self.objects() if o.is_annotation]

    def detections(self) -> list[PathObject]:
        return [o for o in self.objects() if o.is_detection]

    def annotations_in_bounds(self, x0: float, y0: float, x1: float, y1: float) -> list[PathObject]:
        return [o for o in self.annotations() if o.roi.intersects_bounds(x0, y0, x1, y1)]

    # -- editing ----------------------------------------------------------

    def add_object(self, obj: PathObject) -> PathObject:
        with self._lock:
            self._objects.append(obj)
        self._fire(is_structural=True, changed_objects=(obj,))
        return obj

    def add_objects(self, objs: Iterable[PathObject]) -> None:
        objs = tuple(objs)
        with self._lock:
            self._objects.extend(objs)
        self._fire(is_structural=True, changed_objects=objs)

    def remove_object(self, obj: PathObject) -> None:
        with self._lock:
            self._objects.remove(obj)
        self._fire(is_structural=True, changed_objects=(obj,))

    def set_path_class(self, obj: PathObject, path_class: Optional[PathClass]) -> None:
        obj.path_class = path_class
        self._fire(is_classification=True, changed_objects=(obj,))

    def set_path_classes(self, assignments: Iterable[tuple[PathObject, Optional[PathClass]]]) -> None:
        """Reclassify many objects with a single event."""
        changed = []
        for obj, path_class in assignments:
            obj.path_class = path_class
            changed.append(obj)
        if changed:
            self._fire(is_classification=True, changed_objects=tuple(changed))

    def set_measurement(self, obj: PathObject, name: str, value: float) -> None:
        obj.measurements[name] = value
        self._fire(is_measurement_only=True, changed_objects=(obj,))
