"""CLIConfig: Command-line operational overrides.

Minimal configuration for parameters that commonly change between runs:
output paths, classifier kind, resolution, verbosity.

This schema handles command-line arguments parsed by argparse.
"""

from typing import Literal, Optional
from pydantic import Field, model_validator
from pixtrain.schemas.base import PixtrainBaseModel
from pixtrain.schemas.param import RESOLUTION_NAMES


class CLIConfig(PixtrainBaseModel):
    """Command-line configuration overrides.

    Operational-only settings that override user and param configs.
    Highest priority in config resolution.

    Notes
    -----
    If a custom downsample is given but no resolution name, the resolution
    is automatically set to "Custom" (schema responsibility, not runtime).

    Usage
    -----
        cli_cfg = CLIConfig(
            base_dir="/scratch/pixtrain_output",
            classifier="ann_mlp",
            resolution="High",
        )

        internal = resolve_config(param_cfg, user_cfg, cli_cfg)
    """

    base_dir: Optional[str] = None
    classifier: Optional[str] = None
    resolution: Optional[Literal[RESOLUTION_NAMES]] = None
    downsample: Optional[float] = Field(None, gt=0)
    max_samples: Optional[int] = Field(None, ge=0)
    rng_seed: Optional[int] = None
    log_level: Optional[Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]] = None

    @model_validator(mode="after")
    def infer_custom_resolution(self):
        """A bare downsample means the user wants a custom resolution."""
        if self.resolution is None and self.downsample is not None:
            self.resolution = "Custom"
        return self

    def to_internal_overrides(self) -> dict:
        """Convert CLI config to internal config structure.

        Returns
        -------
        dict
            Nested dictionary matching InternalConfig structure
        """
        overrides = {}

        if self.base_dir is not None:
            overrides["output"] = {"base_dir": str(self.base_dir)}

        if self.classifier is not None:
            overrides["classifier"] = {"kind": self.classifier.lower().strip()}

        resolution = {}
        if self.resolution is not None:
            resolution["name"] = self.resolution
        if self.downsample is not None:
            resolution["custom_downsample"] = self.downsample
        if resolution:
            overrides["resolution"] = resolution

        training = {}
        if self.max_samples is not None:
            training["max_samples"] = self.max_samples
        if self.rng_seed is not None:
            training["rng_seed"] = self.rng_seed
        if training:
            overrides["training"] = training

        if self.log_level is not None:
            overrides["logging"] = {"level": self.log_level}

        return overrides
