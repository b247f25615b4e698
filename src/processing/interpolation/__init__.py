"""Regular-interval interpolation of classified trips."""

from .adapter import interpolate_trips
from .engines import Interpolator, LinearInterpolator
from .interpolation_configs import InterpolationConfig

__all__ = [
    "InterpolationConfig",
    "Interpolator",
    "LinearInterpolator",
    "interpolate_trips",
]
