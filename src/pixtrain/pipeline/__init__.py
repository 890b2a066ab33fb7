"""Training coordinator and the events it consumes."""

from pixtrain.pipeline.events import (
    ParamChanged,
    LivePredictionChanged,
    AnnotationChanged,
    TrainRequested,
    FeatureDisplayChanged,
    TileReady,
    Shutdown,
)
from pixtrain.pipeline.coordinator import TrainingCoordinator, is_relevant_change

__all__ = [
    'ParamChanged',
    'LivePredictionChanged',
    'AnnotationChanged',
    'TrainRequested',
    'FeatureDisplayChanged',
    'TileReady',
    'Shutdown',
    'TrainingCoordinator',
    'is_relevant_change',
]
