"""UserConfig: Forgiving, minimal user-facing configuration.

This schema accepts user inputs in a variety of formats, with aliases
for common naming patterns (e.g., CLASSIFIER → classifier, MAX_SAMPLES → max_samples).

UserConfig is intentionally minimal - users only specify what they want
to override from the expert defaults. Validation is lenient to accept
both uppercase and lowercase keys, integers where floats are expected, etc.
"""

from typing import Any, Literal, Optional
from pydantic import Field, field_validator
from pixtrain.schemas.base import PixtrainBaseModel
from pixtrain.schemas.param import RESOLUTION_NAMES


def _lower(v):
    if isinstance(v, str):
        return v.lower().strip().replace("-", "_").replace(" ", "_")
    return v


def _resolution_name(v):
    """Match resolution names case-insensitively ("very high" -> "Very high")."""
    if isinstance(v, str):
        wanted = " ".join(v.replace("_", " ").split()).lower()
        for name in RESOLUTION_NAMES:
            if name.lower() == wanted:
                return name
    return v


class UserResolutionConfig(PixtrainBaseModel):
    """User-facing resolution config."""
    name: Optional[str] = None
    base_pixel_size: Optional[float] = None
    units: Optional[str] = None
    custom_downsample: Optional[float] = None
    custom_pixel_size: Optional[float] = None

    @field_validator("name", mode="before")
    @classmethod
    def normalize_name(cls, v):
        return _resolution_name(v)


class UserFeaturesConfig(PixtrainBaseModel):
    """User-facing feature calculator config."""
    channels: Optional[list[str]] = None
    sigmas: Optional[list[float]] = None
    features: Optional[list[str]] = None

    @field_validator("features", mode="before")
    @classmethod
    def normalize_features(cls, v):
        """Accept 'Gradient magnitude' as well as 'gradient_magnitude'."""
        if isinstance(v, (list, tuple)):
            return [_lower(f) for f in v]
        return v


class UserClassifierConfig(PixtrainBaseModel):
    """User-facing classifier config."""
    kind: Optional[str] = None
    params: Optional[dict[str, Any]] = None
    output_type: Optional[str] = None

    @field_validator("kind", "output_type", mode="before")
    @classmethod
    def normalize_names(cls, v):
        return _lower(v)


class UserTrainingConfig(PixtrainBaseModel):
    """User-facing training config."""
    max_samples: Optional[int] = None
    rng_seed: Optional[int] = None
    reweight_samples: Optional[bool] = None


class UserPreprocessingConfig(PixtrainBaseModel):
    """User-facing preprocessing config."""
    normalization: Optional[str] = None
    pca_retained_variance: Optional[float] = None
    pca_normalize: Optional[bool] = None

    @field_validator("normalization", mode="before")
    @classmethod
    def normalize_normalization(cls, v):
        return _lower(v)


class UserBoundaryConfig(PixtrainBaseModel):
    """User-facing boundary config."""
    strategy: Optional[str] = None
    thickness: Optional[float] = None
    class_name: Optional[str] = None

    @field_validator("strategy", mode="before")
    @classmethod
    def normalize_strategy(cls, v):
        return _lower(v)


class UserOverlayConfig(PixtrainBaseModel):
    """User-facing overlay config."""
    tile_size: Optional[int] = None
    region: Optional[str] = None
    live_prediction: Optional[bool] = None
    opacity: Optional[float] = None
    max_workers: Optional[int] = None
    max_cached_tiles: Optional[int] = None

    @field_validator("region", mode="before")
    @classmethod
    def normalize_region(cls, v):
        return _lower(v)


class UserConfig(PixtrainBaseModel):
    """User-facing configuration schema.

    Minimal, forgiving, and uses common aliases. Users only specify
    what they want to override from ParamConfig defaults.

    This config is converted to internal overrides during resolution.

    Usage
    -----
        user_cfg = UserConfig(
            RESOLUTION="High",
            CLASSIFIER="ann_mlp",
            MAX_SAMPLES=20000,
            BOUNDARY_STRATEGY="derived",
        )

        internal = resolve_config(param_cfg, user_cfg, cli_cfg)
    """

    # Top-level operational settings
    base_dir: Optional[str] = Field(None, alias="BASE_DIR")
    log_level: Optional[Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]] = Field(None, alias="LOG_LEVEL")

    # Resolution (flat aliases)
    resolution: Optional[str] = Field(None, alias="RESOLUTION")
    pixel_size: Optional[float] = Field(None, alias="PIXEL_SIZE")
    pixel_units: Optional[str] = Field(None, alias="PIXEL_UNITS")

    # Features (flat aliases)
    channels: Optional[list[str]] = Field(None, alias="CHANNELS")
    sigmas: Optional[list[float]] = Field(None, alias="SIGMAS")
    features: Optional[list[str]] = Field(None, alias="FEATURES")

    # Classifier (flat aliases)
    classifier: Optional[str] = Field(None, alias="CLASSIFIER")
    output_type: Optional[str] = Field(None, alias="OUTPUT_TYPE")

    # Training (flat aliases)
    max_samples: Optional[int] = Field(None, alias="MAX_SAMPLES")
    rng_seed: Optional[int] = Field(None, alias="RNG_SEED")
    reweight_samples: Optional[bool] = Field(None, alias="REWEIGHT_SAMPLES")

    # Preprocessing (flat aliases)
    normalization: Optional[str] = Field(None, alias="NORMALIZATION")
    pca_retained_variance: Optional[float] = Field(None, alias="PCA_RETAINED_VARIANCE")

    # Boundary (flat aliases)
    boundary_strategy: Optional[str] = Field(None, alias="BOUNDARY_STRATEGY")
    boundary_thickness: Optional[float] = Field(None, alias="BOUNDARY_THICKNESS")
    boundary_class: Optional[str] = Field(None, alias="BOUNDARY_CLASS")

    # Overlay (flat aliases)
    live_prediction: Optional[bool] = Field(None, alias="LIVE_PREDICTION")
    region: Optional[str] = Field(None, alias="REGION")

    # Nested overrides (advanced users)
    resolution_: Optional[UserResolutionConfig] = Field(None, alias="resolution_config")
    features_: Optional[UserFeaturesConfig] = Field(None, alias="features_config")
    classifier_: Optional[UserClassifierConfig] = Field(None, alias="classifier_config")
    training: Optional[UserTrainingConfig] = None
    preprocessing: Optional[UserPreprocessingConfig] = None
    boundary: Optional[UserBoundaryConfig] = None
    overlay: Optional[UserOverlayConfig] = None

    model_config = PixtrainBaseModel.model_config.copy()
    # Allow forgiving input dictionaries (ignore unknown legacy keys)
    model_config.update({"populate_by_name": True, "extra": "ignore"})

    @field_validator("pixel_size", "pca_retained_variance", "boundary_thickness", mode="before")
    @classmethod
    def coerce_numeric_fields(cls, v):
        """Accept int or float for numeric fields."""
        if v is not None:
            return float(v)
        return v

    @field_validator("classifier", "output_type", "normalization", "boundary_strategy", "region", mode="before")
    @classmethod
    def normalize_names(cls, v):
        """Normalize choice names to lowercase snake case."""
        return _lower(v)

    @field_validator("resolution", mode="before")
    @classmethod
    def normalize_resolution(cls, v):
        return _resolution_name(v)

    @field_validator("features", mode="before")
    @classmethod
    def normalize_features(cls, v):
        if isinstance(v, (list, tuple)):
            return [_lower(f) for f in v]
        return v

    def to_internal_overrides(self) -> dict:
        """Convert flat UserConfig to nested InternalConfig structure.

        Returns
        -------
        dict
            Nested dictionary matching InternalConfig structure
        """
        overrides = {}

        if self.base_dir is not None:
            overrides["output"] = {"base_dir": str(self.base_dir)}

        if self.log_level is not None:
            overrides["logging"] = {"level": self.log_level}

        # Resolution section
        resolution = {}
        if self.resolution is not None:
            resolution["name"] = self.resolution
        if self.pixel_size is not None:
            resolution["base_pixel_size"] = self.pixel_size
        if self.pixel_units is not None:
            resolution["units"] = self.pixel_units
        if self.resolution_ is not None:
            resolution.update(self.resolution_.model_dump(exclude_none=True))
        if resolution:
            overrides["resolution"] = resolution

        # Features section
        features = {}
        if self.channels is not None:
            features["channels"] = self.channels
        if self.sigmas is not None:
            features["sigmas"] = self.sigmas
        if self.features is not None:
            features["features"] = self.features
        if self.features_ is not None:
            features.update(self.features_.model_dump(exclude_none=True))
        if features:
            overrides["features"] = features

        # Classifier section
        classifier = {}
        if self.classifier is not None:
            classifier["kind"] = self.classifier
        if self.output_type is not None:
            classifier["output_type"] = self.output_type
        if self.classifier_ is not None:
            classifier.update(self.classifier_.model_dump(exclude_none=True))
        if classifier:
            overrides["classifier"] = classifier

        # Training section
        training = {}
        if self.max_samples is not None:
            training["max_samples"] = self.max_samples
        if self.rng_seed is not None:
            training["rng_seed"] = self.rng_seed
        if self.reweight_samples is not None:
            training["reweight_samples"] = self.reweight_samples
        if self.training is not None:
            training.update(self.training.model_dump(exclude_none=True))
        if training:
            overrides["training"] = training

        # Preprocessing section
        preprocessing = {}
        if self.normalization is not None:
            preprocessing["normalization"] = self.normalization
        if self.pca_retained_variance is not None:
            preprocessing["pca_retained_variance"] = self.pca_retained_variance
        if self.preprocessing is not None:
            preprocessing.update(self.preprocessing.model_dump(exclude_none=True))
        if preprocessing:
            overrides["preprocessing"] = preprocessing

        # Boundary section
        boundary = {}
        if self.boundary_strategy is not None:
            boundary["strategy"] = self.boundary_strategy
        if self.boundary_thickness is not None:
            boundary["thickness"] = self.boundary_thickness
        if self.boundary_class is not None:
            boundary["class_name"] = self.boundary_class
        if self.boundary is not None:
            boundary.update(self.boundary.model_dump(exclude_none=True))
        if boundary:
            overrides["boundary"] = boundary

        # Overlay section
        overlay = {}
        if self.live_prediction is not None:
            overlay["live_prediction"] = self.live_prediction
        if self.region is not None:
            overlay["region"] = self.region
        if self.overlay is not None:
            overlay.update(self.overlay.model_dump(exclude_none=True))
        if overlay:
            overrides["overlay"] = overlay

        return overrides
