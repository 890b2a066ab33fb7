"""Pydantic configuration schemas for pixtrain.

This module provides strictly typed configuration models for the pixel
classifier training session. All configuration validation, coercion, and
normalization happens at schema validation time via Pydantic.

Exports
-------
resolve_config : function
    Single entrypoint for configuration resolution
init_runtime_config : function
    Resolve, create output directories and persist the config for a run
InternalConfig : class
    Fully validated, authoritative runtime configuration
ParamConfig : class
    Expert defaults (complete)
UserConfig : class
    User-facing configuration (forgiving, minimal)
CLIConfig : class
    Command-line operational overrides
"""

from pixtrain.schemas.resolve import resolve_config
from pixtrain.schemas.internal import InternalConfig
from pixtrain.schemas.param import ParamConfig
from pixtrain.schemas.user import UserConfig
from pixtrain.schemas.cli import CLIConfig
from pixtrain.schemas.initialization import init_runtime_config

__all__ = [
    'resolve_config',
    'init_runtime_config',
    'InternalConfig',
    'ParamConfig',
    'UserConfig',
    'CLIConfig',
]
