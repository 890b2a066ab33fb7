"""Image-side building blocks: resolutions, classes, hierarchy, tiles, features."""

from pixtrain.imaging.resolution import (
    Resolution,
    default_resolutions,
    custom_resolution,
    add_resolution,
    resolution_from_config,
)
from pixtrain.imaging.classes import PathClass, BOUNDARY_CLASS_NAME, is_ignored_class
from pixtrain.imaging.hierarchy import ROI, PathObject, HierarchyEvent, AnnotationHierarchy
from pixtrain.imaging.tiles import TileSource, ArrayTileSource, TileRequest, TileGrid, read_scaled
from pixtrain.imaging.features import (
    FeatureOperator,
    FilterOp,
    FeatureBankOp,
    ChannelsOp,
    PreprocessOp,
    compose,
    build_default_operator,
    operator_from_config,
)

__all__ = [
    'Resolution',
    'default_resolutions',
    'custom_resolution',
    'add_resolution',
    'resolution_from_config',
    'PathClass',
    'BOUNDARY_CLASS_NAME',
    'is_ignored_class',
    'ROI',
    'PathObject',
    'HierarchyEvent',
    'AnnotationHierarchy',
    'TileSource',
    'ArrayTileSource',
    'TileRequest',
    'TileGrid',
    'read_scaled',
    'FeatureOperator',
    'FilterOp',
    'FeatureBankOp',
    'ChannelsOp',
    'PreprocessOp',
    'compose',
    'build_default_operator',
    'operator_from_config',
]
