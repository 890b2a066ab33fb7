"""Sample assembly, preprocessing, classifiers and training."""

from pixtrain.training.samples import (
    Skip,
    DerivedThickness,
    ClassifyAs,
    with_thickness,
    boundary_strategy_from_config,
    SampleTable,
    assemble,
    class_counts,
)
from pixtrain.training.preprocessing import Normalization, FeatureNormalization, FittedPreprocessor
from pixtrain.training.classifiers import (
    ClassifierSpec,
    StatModel,
    FittedClassifier,
    register_classifier,
    available_classifiers,
)
from pixtrain.training.model import TrainedModel, ModelMetadata, OutputChannel, export_artifact, load_artifact
from pixtrain.training.trainer import TrainingOptions, TrainingReport, train

__all__ = [
    'Skip',
    'DerivedThickness',
    'ClassifyAs',
    'with_thickness',
    'boundary_strategy_from_config',
    'SampleTable',
    'assemble',
    'class_counts',
    'Normalization',
    'FeatureNormalization',
    'FittedPreprocessor',
    'ClassifierSpec',
    'StatModel',
    'FittedClassifier',
    'register_classifier',
    'available_classifiers',
    'TrainedModel',
    'ModelMetadata',
    'OutputChannel',
    'export_artifact',
    'load_artifact',
    'TrainingOptions',
    'TrainingReport',
    'train',
]
