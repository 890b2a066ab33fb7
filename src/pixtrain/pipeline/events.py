"""Messages sent to the TrainingCoordinator.

The interactive thread, the annotation hierarchy and the overlay workers
never touch coordinator state directly; they post one of these.
"""

import threading
from dataclasses import dataclass, field
from typing import Any, Optional

from pixtrain.imaging.hierarchy import HierarchyEvent
from pixtrain.overlay.overlay import TileReady

__all__ = [
    'ParamChanged',
    'LivePredictionChanged',
    'AnnotationChanged',
    'TrainRequested',
    'FeatureDisplayChanged',
    'TileReady',
    'Shutdown',
    'MODEL_PARAMS',
    'DISPLAY_PARAMS',
]

# Changing any of these invalidates the current model
MODEL_PARAMS = (
    "resolution",
    "feature_operator",
    "classifier",
    "output_type",
    "boundary_strategy",
    "boundary_thickness",
    "normalization",
    "training_options",
)

# Presentation or gating only; the model and cached tiles stay valid
DISPLAY_PARAMS = ("region", "opacity")


@dataclass(frozen=True)
class ParamChanged:
    field: str
    value: Any


@dataclass(frozen=True)
class LivePredictionChanged:
    enabled: bool


@dataclass(frozen=True)
class AnnotationChanged:
    event: HierarchyEvent


@dataclass(frozen=True)
class TrainRequested:
    """Retrain now. ``done``, if given, is set once the run has finished."""
    done: Optional[threading.Event] = field(default=None, compare=False)


@dataclass(frozen=True)
class FeatureDisplayChanged:
    """Show one feature channel instead of the classification (None for the classification)."""
    channel: Optional[str]


@dataclass(frozen=True)
class Shutdown:
    pass
