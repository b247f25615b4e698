"""Data models for tracking fixes, origins, trips and trip summaries.

This module uses Pydantic for data validation.

Models represent individual records (rows) rather than entire DataFrames.
CanonicalData.validate() applies them to Polars DataFrames row by row,
honouring the step metadata attached with step_field().
"""

from datetime import datetime

from pydantic import BaseModel, field_validator, model_validator

from track_canon.codebook.trips import NON_TRIP_ID, TripType
from track_canon.core.step_field import step_field


def _check_trip_type_label(value: str | None) -> str | None:
    if value is not None and TripType.from_label(value) is None:
        msg = f"Unknown trip type '{value}'. Expected one of {TripType.labels()}"
        raise ValueError(msg)
    return value


# Data Models ------------------------------------------------------------------
class FixModel(BaseModel):
    """One GPS observation as delivered by the acquisition stage."""

    individual_id: str | int = step_field(required_in_steps="all")
    timestamp: datetime = step_field(required_in_steps="all")
    longitude: float = step_field(required_in_steps="all")
    latitude: float = step_field(required_in_steps="all")
    # Present on the raw stream unless origins are loaded as their own table
    origin_longitude: float | None = None
    origin_latitude: float | None = None


class OriginModel(BaseModel):
    """Reference point (colony or nest) for one individual."""

    individual_id: str = step_field(unique=True, required_in_steps="all")
    longitude: float = step_field(required_in_steps="all")
    latitude: float = step_field(required_in_steps="all")


class TripFixModel(BaseModel):
    """Fix annotated with trip membership and classification."""

    individual_id: str = step_field(required_in_steps="all")
    timestamp: datetime = step_field(required_in_steps="all")
    longitude: float = step_field(required_in_steps="all")
    latitude: float = step_field(required_in_steps="all")
    origin_distance: float = step_field(ge=0, required_in_steps="all")
    trip_id: int = step_field(ge=NON_TRIP_ID, required_in_steps="all")
    trip_section: int = step_field(ge=1, required_in_steps="all")
    diff_time: float = step_field(ge=0, required_in_steps="all")
    # Null for the first fix of each trip
    diff_dist: float | None = step_field(ge=0, required_in_steps="all")
    gap: bool = step_field(required_in_steps="all")
    trip_type: str = step_field(required_in_steps="all", description=TripType.field_description)

    @field_validator("trip_type")
    @classmethod
    def known_trip_type(cls, value: str | None) -> str | None:
        """Only the four trip type labels are allowed."""
        return _check_trip_type_label(value)

    @model_validator(mode="after")
    def non_trip_fixes_are_non_trip_type(self) -> "TripFixModel":
        """Fixes outside any trip can only carry the Non-trip type."""
        if self.trip_id == NON_TRIP_ID and self.trip_type != TripType.NON_TRIP.label:
            msg = (
                f"trip_id {NON_TRIP_ID} must have trip_type "
                f"'{TripType.NON_TRIP.label}', got '{self.trip_type}'"
            )
            raise ValueError(msg)
        return self


class InterpolatedFixModel(BaseModel):
    """Regularly spaced fix returned by an interpolation engine."""

    individual_id: str = step_field(required_in_steps="all")
    trip_id: int = step_field(ge=1, required_in_steps="all")
    trip_section: int | None = step_field(ge=1, default=None)
    timestamp: datetime = step_field(required_in_steps="all")
    longitude: float = step_field(required_in_steps="all")
    latitude: float = step_field(required_in_steps="all")
    origin_distance: float = step_field(ge=0, required_in_steps="all")
    trip_type: str = step_field(
        required_in_steps=["build_trip_summaries"], description=TripType.field_description
    )

    @field_validator("trip_type")
    @classmethod
    def known_trip_type(cls, value: str | None) -> str | None:
        """Only the four trip type labels are allowed."""
        return _check_trip_type_label(value)


class TripSummaryModel(BaseModel):
    """One row per (individual, trip) summarising raw fixes."""

    individual_id: str = step_field(required_in_steps="all")
    trip_id: int = step_field(ge=NON_TRIP_ID, required_in_steps="all")
    n_locs: int = step_field(ge=1, required_in_steps="all")
    departure: datetime = step_field(required_in_steps="all")
    return_time: datetime = step_field(required_in_steps="all")
    duration: float = step_field(ge=0, required_in_steps="all")
    max_dist_km: float = step_field(ge=0, required_in_steps="all")
    complete: str = step_field(required_in_steps="all")

    @field_validator("complete")
    @classmethod
    def known_trip_type(cls, value: str | None) -> str | None:
        """Only the four trip type labels are allowed."""
        return _check_trip_type_label(value)

    @model_validator(mode="after")
    def return_after_departure(self) -> "TripSummaryModel":
        """Return time cannot precede departure."""
        if self.return_time < self.departure:
            msg = "return_time must not be earlier than departure"
            raise ValueError(msg)
        return self


class InterpolatedTripSummaryModel(BaseModel):
    """One row per (individual, trip) summarising interpolated fixes."""

    individual_id: str = step_field(required_in_steps="all")
    trip_id: int = step_field(ge=1, required_in_steps="all")
    raw_n_locs: int = step_field(ge=1, required_in_steps="all")
    interp_n_locs: int = step_field(ge=1, required_in_steps="all")
    departure: datetime = step_field(required_in_steps="all")
    return_time: datetime = step_field(required_in_steps="all")
    duration: float = step_field(ge=0, required_in_steps="all")
    max_dist_km: float = step_field(ge=0, required_in_steps="all")
    complete: str = step_field(required_in_steps="all")

    @field_validator("complete")
    @classmethod
    def known_trip_type(cls, value: str | None) -> str | None:
        """Only the four trip type labels are allowed."""
        return _check_trip_type_label(value)


class IssueModel(BaseModel):
    """A per-individual or per-trip failure collected during processing."""

    stage: str = step_field(required_in_steps="all")
    error: str = step_field(required_in_steps="all")
    individual_id: str | None = None
    trip_id: int | None = None
    message: str = step_field(required_in_steps="all")
