"""InternalConfig: Authoritative runtime configuration.

This is the ONLY config schema that runtime code sees. It is fully validated,
normalized, and contains NO optional fields that processing code depends on.

All .get() calls, fallback defaults, and validation logic are FORBIDDEN in
runtime code - everything is explicit here.
"""

from typing import Any, Literal, Optional
from pydantic import Field, ConfigDict
from pixtrain.schemas.base import PixtrainBaseModel
from pixtrain.schemas.param import FEATURE_NAMES, RESOLUTION_NAMES


_FROZEN = ConfigDict(
    extra='forbid',
    validate_assignment=True,
    use_enum_values=True,
    str_strip_whitespace=True,
    frozen=True,
)


# =============================================================================
# Nested Configuration Models (Runtime)
# =============================================================================

class InternalResolutionConfig(PixtrainBaseModel):
    """Runtime resolution selection.

    base_pixel_size and the custom scale stay Optional: an uncalibrated
    image has no pixel size, and only the "Custom" entry needs a scale.
    """
    name: Literal[RESOLUTION_NAMES]
    base_pixel_size: Optional[float]
    units: str
    custom_downsample: Optional[float]
    custom_pixel_size: Optional[float]

    model_config = _FROZEN


class InternalFeaturesConfig(PixtrainBaseModel):
    """Runtime feature calculator settings."""
    channels: Optional[list[str]]  # None selects every input channel
    sigmas: list[float]
    features: list[Literal[FEATURE_NAMES]]

    model_config = _FROZEN


class InternalClassifierConfig(PixtrainBaseModel):
    """Runtime classifier selection."""
    kind: str
    params: dict[str, Any]
    output_type: Literal["classification", "probability"]

    model_config = _FROZEN


class InternalTrainingConfig(PixtrainBaseModel):
    """Runtime training options."""
    max_samples: int = Field(ge=0)
    rng_seed: int
    reweight_samples: bool

    model_config = _FROZEN


class InternalPreprocessingConfig(PixtrainBaseModel):
    """Runtime preprocessing settings."""
    normalization: Literal["none", "mean_variance", "min_max"]
    pca_retained_variance: float = Field(ge=0, le=1.0)
    pca_normalize: bool

    model_config = _FROZEN


class InternalBoundaryConfig(PixtrainBaseModel):
    """Runtime boundary strategy settings."""
    strategy: Literal["skip", "derived", "classify"]
    thickness: float = Field(ge=0)
    class_name: Optional[str]  # Only read when strategy == "classify"

    model_config = _FROZEN


class InternalOverlayConfig(PixtrainBaseModel):
    """Runtime overlay settings."""
    tile_size: int
    region: Literal["whole_image", "annotations_only"]
    live_prediction: bool
    opacity: float
    max_workers: int = Field(ge=1)
    max_cached_tiles: int = Field(ge=1)

    model_config = _FROZEN


class InternalOutputConfig(PixtrainBaseModel):
    """Runtime output configuration."""
    base_dir: str
    artifact_name: str

    model_config = _FROZEN


class InternalLoggingConfig(PixtrainBaseModel):
    """Runtime logging configuration."""
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

    model_config = _FROZEN


# =============================================================================
# Main InternalConfig
# =============================================================================

class InternalConfig(PixtrainBaseModel):
    """Authoritative runtime configuration.

    This is the ONLY configuration schema that processing code sees.
    It is fully validated, immutable, and contains explicit values for
    all parameters (no None for fields that runtime depends on).

    Usage
    -----
    Runtime modules receive InternalConfig and access fields directly:

        def __init__(self, config: InternalConfig):
            self.max_samples = config.training.max_samples  # NOT .get()
            self.tile_size = config.overlay.tile_size

    Rules
    -----
    - NO .get() calls
    - NO fallback defaults
    - NO type checking
    - NO validation

    All of that happens during config resolution, not in runtime code.
    """

    resolution: InternalResolutionConfig
    features: InternalFeaturesConfig
    classifier: InternalClassifierConfig
    training: InternalTrainingConfig
    preprocessing: InternalPreprocessingConfig
    boundary: InternalBoundaryConfig
    overlay: InternalOverlayConfig
    output: InternalOutputConfig
    logging: InternalLoggingConfig

    model_config = ConfigDict(
        extra='forbid',
        validate_assignment=True,
        use_enum_values=True,
        str_strip_whitespace=True,
        frozen=True,  # Immutable after construction
        populate_by_name=True,
    )
