"""ParamConfig: Expert defaults for the pixtrain training session.

This module defines the complete default configuration. ALL session
parameters must have defaults here. No runtime code should define
fallback values - this is the single source of truth for defaults.

Runtime code NEVER reads from ParamConfig directly - it only receives InternalConfig.
"""

from typing import Any, Literal, Optional
from pydantic import Field, field_validator, model_validator
from pixtrain.schemas.base import PixtrainBaseModel


RESOLUTION_NAMES = (
    "Full",
    "Very high",
    "High",
    "Moderate",
    "Low",
    "Very low",
    "Extremely low",
    "Custom",
)

FEATURE_NAMES = (
    "gaussian",
    "gradient_magnitude",
    "laplacian_of_gaussian",
    "difference_of_gaussians",
    "hessian_eigenvalues",
    "structure_tensor_eigenvalues",
)


# =============================================================================
# Nested Configuration Models
# =============================================================================

class ResolutionConfig(PixtrainBaseModel):
    """Working resolution for feature calculation and prediction."""
    name: Literal[RESOLUTION_NAMES] = "Moderate"
    base_pixel_size: Optional[float] = Field(None, gt=0, description="Full-resolution pixel size; None if uncalibrated")
    units: str = "px"
    custom_downsample: Optional[float] = Field(None, gt=0)
    custom_pixel_size: Optional[float] = Field(None, gt=0)

    @model_validator(mode="after")
    def custom_needs_a_scale(self):
        """A custom resolution must say how far it is from full resolution."""
        if self.name == "Custom" and self.custom_downsample is None and self.custom_pixel_size is None:
            raise ValueError("Custom resolution requires custom_downsample or custom_pixel_size")
        return self


class FeaturesConfig(PixtrainBaseModel):
    """Feature calculator settings (channels x features x scales)."""
    channels: Optional[list[str]] = Field(None, description="Input channels to use; None means all")
    sigmas: list[float] = Field(default_factory=lambda: [1.0, 2.0])
    features: list[Literal[FEATURE_NAMES]] = Field(
        default_factory=lambda: ["gaussian", "gradient_magnitude", "laplacian_of_gaussian"]
    )

    @field_validator("sigmas")
    @classmethod
    def sigmas_positive(cls, v):
        """Smoothing scales must be positive and non-empty."""
        if not v or any(s <= 0 for s in v):
            raise ValueError("sigmas must be a non-empty list of positive values")
        return sorted(float(s) for s in v)

    @field_validator("features")
    @classmethod
    def features_not_empty(cls, v):
        if not v:
            raise ValueError("At least one feature must be selected")
        return v


class ClassifierConfig(PixtrainBaseModel):
    """Statistical model selection."""
    kind: str = "rtrees"
    params: dict[str, Any] = Field(default_factory=dict)
    output_type: Literal["classification", "probability"] = "classification"

    @field_validator("kind", mode="before")
    @classmethod
    def normalize_kind(cls, v):
        """Normalize classifier kinds to lowercase."""
        if isinstance(v, str):
            return v.lower().strip()
        return v


class TrainingConfig(PixtrainBaseModel):
    """Train/test split and sample weighting."""
    max_samples: int = Field(100_000, ge=0, description="0 disables the held-out split")
    rng_seed: int = 100
    reweight_samples: bool = False


class PreprocessingConfig(PixtrainBaseModel):
    """Feature normalization and optional PCA."""
    normalization: Literal["none", "mean_variance", "min_max"] = "none"
    pca_retained_variance: float = Field(0.0, ge=0, le=1.0, description="<= 0 disables PCA")
    pca_normalize: bool = False


class BoundaryConfig(PixtrainBaseModel):
    """How pixels close to annotation edges are labelled."""
    strategy: Literal["skip", "derived", "classify"] = "skip"
    thickness: float = Field(1.0, ge=0, description="Band width in working-resolution pixels")
    class_name: Optional[str] = None

    @model_validator(mode="after")
    def classify_needs_class(self):
        if self.strategy == "classify" and not self.class_name:
            raise ValueError("Boundary strategy 'classify' requires class_name")
        return self


class OverlayConfig(PixtrainBaseModel):
    """Live prediction overlay settings."""
    tile_size: int = Field(512, ge=16)
    region: Literal["whole_image", "annotations_only"] = "whole_image"
    live_prediction: bool = False
    opacity: float = Field(1.0, ge=0, le=1.0)
    max_workers: int = Field(4, ge=1)
    max_cached_tiles: int = Field(256, ge=1)


class OutputConfig(PixtrainBaseModel):
    """Output locations."""
    base_dir: str = "./pixtrain_output"
    artifact_name: str = "pixel_classifier"


class LoggingConfig(PixtrainBaseModel):
    """Logging configuration."""
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"


# =============================================================================
# Main ParamConfig
# =============================================================================

class ParamConfig(PixtrainBaseModel):
    """Complete expert configuration with all defaults.

    This is the single source of truth for all session parameters.
    Every tunable parameter MUST have a default here.

    Usage
    -----
    This config is NOT used directly by runtime code. It serves as the
    base layer in config resolution:

        internal_cfg = resolve_config(param_cfg, user_cfg, cli_cfg)

    Runtime code only sees InternalConfig.
    """

    resolution: ResolutionConfig = Field(default_factory=ResolutionConfig)
    features: FeaturesConfig = Field(default_factory=FeaturesConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    training: TrainingConfig = Field(default_factory=TrainingConfig)
    preprocessing: PreprocessingConfig = Field(default_factory=PreprocessingConfig)
    boundary: BoundaryConfig = Field(default_factory=BoundaryConfig)
    overlay: OverlayConfig = Field(default_factory=OverlayConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
