"""Working resolutions for feature calculation and prediction.

A Resolution is relative to the full-resolution image: ``downsample`` 8
means one working pixel covers 8 x 8 full-resolution pixels.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

from pixtrain.contracts import ConfigurationError

__all__ = [
    'Resolution',
    'RESOLUTION_LADDER',
    'default_resolutions',
    'custom_resolution',
    'add_resolution',
    'resolution_from_config',
    'pyramid_level_for',
    'scaled_size',
]

logger = logging.getLogger(__name__)

RESOLUTION_LADDER = (
    ("Full", 1),
    ("Very high", 2),
    ("High", 4),
    ("Moderate", 8),
    ("Low", 16),
    ("Very low", 32),
    ("Extremely low", 64),
)

_MICRON_UNITS = {"µm", "um", "micron", "microns"}


@dataclass(frozen=True)
class Resolution:
    """Immutable calibration record."""
    name: str
    pixel_size: float
    units: str
    downsample: float

    @property
    def is_calibrated(self) -> bool:
        return self.units.lower() in _MICRON_UNITS

    def to_working(self, value: float) -> float:
        """Full-resolution pixel coordinate to working-resolution coordinate."""
        return value / self.downsample

    def to_full(self, value: float) -> float:
        return value * self.downsample

    def __str__(self):
        if self.is_calibrated:
            return f"{self.name} ({self.pixel_size:.2f} {self.units}/px)"
        return f"{self.name} (downsample = {self.downsample:g})"


def default_resolutions(base_pixel_size: Optional[float] = None, units: str = "px") -> list[Resolution]:
    """Named resolution ladder from full resolution down to 64x downsampling.

    Parameters
    ----------
    base_pixel_size : float, optional
        Pixel size at full resolution. Uncalibrated images use 1 px.
    units : str
        Pixel size units ("µm" for calibrated images).
    """
    if base_pixel_size is None:
        base_pixel_size, units = 1.0, "px"
    return [
        Resolution(name, base_pixel_size * d, units, float(d))
        for name, d in RESOLUTION_LADDER
    ]


def custom_resolution(
    base: Resolution,
    pixel_size: Optional[float] = None,
    downsample: Optional[float] = None,
) -> Resolution:
    """Create a "Custom" resolution relative to the full-resolution entry.

    A requested pixel size is only meaningful for a calibrated image;
    otherwise a downsample must be given.
    """
    full_pixel_size = base.pixel_size / base.downsample
    if pixel_size is not None and base.is_calibrated:
        if pixel_size <= 0:
            raise ConfigurationError(f"Requested pixel size must be > 0, got {pixel_size}")
        return Resolution("Custom", float(pixel_size), base.units, pixel_size / full_pixel_size)
    if downsample is None:
        raise ConfigurationError(
            "Custom resolution needs a downsample (the image has no pixel size in microns)"
        )
    if downsample <= 0:
        raise ConfigurationError(f"Requested downsample must be > 0, got {downsample}")
    return Resolution("Custom", full_pixel_size * downsample, base.units, float(downsample))


def add_resolution(resolutions: list[Resolution], resolution: Resolution) -> list[Resolution]:
    """Return a new list containing ``resolution``, sorted by pixel size.

    An existing entry with the same name is replaced.
    """
    kept = [r for r in resolutions if r.name != resolution.name]
    kept.append(resolution)
    return sorted(kept, key=lambda r: r.pixel_size)


def resolution_from_config(config) -> Resolution:
    """Build the selected Resolution from the ``resolution`` config section."""
    ladder = default_resolutions(config.base_pixel_size, config.units)
    if config.name == "Custom":
        res = custom_resolution(
            ladder[0],
            pixel_size=config.custom_pixel_size,
            downsample=config.custom_downsample,
        )
        logger.debug("Using custom resolution %s", res)
        return res
    for res in ladder:
        if res.name == config.name:
            return res
    raise ConfigurationError(f"Unknown resolution: {config.name}")


def pyramid_level_for(downsamples, requested: float) -> int:
    """Index of the coarsest pyramid level not coarser than ``requested``."""
    best = 0
    for i, d in enumerate(downsamples):
        if d <= requested + 1e-9 and d >= downsamples[best]:
            best = i
    return best


def scaled_size(full_size: int, downsample: float) -> int:
    """Size in working pixels of ``full_size`` full-resolution pixels."""
    return max(1, int(math.ceil(full_size / downsample - 1e-9)))
