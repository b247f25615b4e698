"""Configuration model for trip interpolation."""

import re
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from track_canon.codebook.trips import TripType

DURATION_PATTERN = re.compile(r"(\d+(ns|us|ms|s|m|h|d|w|mo|y))+")


class InterpolationConfig(BaseModel):
    """Configuration for regular-interval interpolation of classified trips."""

    trip_types: list[str] = Field(
        default=[TripType.COMPLETE.label, TripType.INCOMPLETE.label],
        description="Trip type labels to interpolate; other trips are left out",
    )

    timestep: str = Field(
        default="10m",
        description=(
            "Interval between interpolated fixes as a Polars duration string "
            "(e.g. '10m', '1h')"
        ),
    )

    interpolate_gaps: bool = Field(
        default=True,
        description=(
            "Interpolate across gaps (one track per trip). If False, each trip "
            "section is interpolated separately and sections with fewer than "
            "3 fixes are dropped."
        ),
    )

    method: Literal["linear"] = Field(
        default="linear",
        description="Bundled interpolation engine used when none is injected",
    )

    @field_validator("trip_types")
    @classmethod
    def validate_trip_types(cls, v: list[str]) -> list[str]:
        """Only known trip type labels may be selected."""
        unknown = [label for label in v if TripType.from_label(label) is None]
        if unknown:
            msg = f"Unknown trip types {unknown}. Expected any of {TripType.labels()}"
            raise ValueError(msg)
        if not v:
            msg = "trip_types must select at least one trip type"
            raise ValueError(msg)
        return v

    @field_validator("timestep")
    @classmethod
    def validate_timestep(cls, v: str) -> str:
        """Timestep must be a positive Polars duration string."""
        if not DURATION_PATTERN.fullmatch(v) or not any(c in "123456789" for c in v):
            msg = f"Invalid timestep '{v}'. Use a Polars duration such as '10m' or '1h30m'"
            raise ValueError(msg)
        return v
