"""Tests for step-aware validation of Pydantic models.

This module tests the selective skip behavior of the pipeline, ensuring that
fields are only required in their designated pipeline steps.
"""

from datetime import datetime

import pytest
from pydantic import ValidationError as PydanticValidationError

from processing.origins import prepare_tracks
from processing.trips import get_trips
from tests.fixtures import colony_scenario, create_fix, fixes_frame
from track_canon.codebook.trips import NON_TRIP_ID, TripType
from track_canon.models.tracking import (
    FixModel,
    InterpolatedFixModel,
    OriginModel,
    TripFixModel,
)
from track_canon.validation.row import (
    get_required_fields_for_step,
    validate_row_for_step,
)


def interpolated_row(**overrides) -> dict:
    """One interpolated fix without a trip type."""
    row = {
        "individual_id": "A01",
        "trip_id": 1,
        "trip_section": None,
        "timestamp": datetime(2024, 6, 1, 7, 10),
        "longitude": 10.0,
        "latitude": 60.05,
        "origin_distance": 5560.0,
    }
    row.update(overrides)
    return row


def trip_fix_row(**overrides) -> dict:
    """One classified fix inside a Complete trip."""
    row = {
        "individual_id": "A01",
        "timestamp": datetime(2024, 6, 1, 7, 0),
        "longitude": 10.0,
        "latitude": 60.05,
        "origin_distance": 5560.0,
        "trip_id": 1,
        "trip_section": 1,
        "diff_time": 0.0,
        "diff_dist": None,
        "gap": False,
        "trip_type": TripType.COMPLETE.label,
    }
    row.update(overrides)
    return row


class TestSelectiveFieldRequirements:
    """Test that fields are only required in specific steps."""

    def test_trip_type_required_only_when_summarizing(self):
        """Interpolation engines may return fixes without a trip type."""
        required_interp = get_required_fields_for_step(InterpolatedFixModel, "interpolate_trips")
        assert "trip_type" not in required_interp

        required_summary = get_required_fields_for_step(
            InterpolatedFixModel, "build_trip_summaries"
        )
        assert "trip_type" in required_summary

    def test_all_steps_fields(self):
        """Fields marked 'all' are required in every step."""
        for step_name in ["load_data", "prepare_tracks", "get_trips"]:
            required = get_required_fields_for_step(FixModel, step_name)
            assert required == {"individual_id", "timestamp", "longitude", "latitude"}

    def test_optional_fields_never_required(self):
        """Origin columns on the raw stream are optional."""
        required = get_required_fields_for_step(FixModel, "load_data")
        assert "origin_longitude" not in required
        assert "origin_latitude" not in required

    def test_unique_metadata_does_not_imply_required(self):
        """Uniqueness and requirement are independent metadata."""
        extra = OriginModel.model_fields["individual_id"].json_schema_extra
        assert extra["unique"] is True
        assert extra["required_in_all_steps"] is True


class TestStepValidationBehavior:
    """Test the actual validation behavior across steps."""

    def test_passes_without_step_specific_field_in_other_step(self):
        """Missing trip_type is fine straight out of the engine."""
        validate_row_for_step(interpolated_row(), InterpolatedFixModel, "interpolate_trips")

    def test_fails_without_step_specific_field_in_its_step(self):
        """Missing trip_type fails once summaries are built."""
        with pytest.raises(ValueError, match="trip_type"):
            validate_row_for_step(interpolated_row(), InterpolatedFixModel, "build_trip_summaries")

    def test_passes_with_all_required_fields_for_step(self):
        """A fully annotated interpolated fix passes the summary step."""
        row = interpolated_row(trip_type=TripType.COMPLETE.label)
        validate_row_for_step(row, InterpolatedFixModel, "build_trip_summaries")

    def test_validates_present_fields_even_if_not_required_in_step(self):
        """A present field is checked even when the step does not require it."""
        row = interpolated_row(trip_type="Partial")

        with pytest.raises(PydanticValidationError, match="Unknown trip type"):
            validate_row_for_step(row, InterpolatedFixModel, "interpolate_trips")

    def test_constraint_violation(self):
        """Field constraints apply in every step."""
        row = interpolated_row(origin_distance=-1.0)

        with pytest.raises(PydanticValidationError, match="greater than or equal"):
            validate_row_for_step(row, InterpolatedFixModel, "interpolate_trips")

    def test_no_step_validates_strictly(self):
        """Without a step every model field is required."""
        with pytest.raises(PydanticValidationError, match="trip_type"):
            validate_row_for_step(interpolated_row(), InterpolatedFixModel)

    def test_nullable_field_present_as_none(self):
        """diff_dist is null on the first fix of a trip."""
        validate_row_for_step(trip_fix_row(), TripFixModel, "get_trips")

    def test_non_trip_fix_with_trip_type(self):
        """Fixes outside any trip cannot carry a trip type of their own."""
        row = trip_fix_row(trip_id=NON_TRIP_ID)

        with pytest.raises(PydanticValidationError, match="must have trip_type"):
            validate_row_for_step(row, TripFixModel, "get_trips")


class TestFixturesValidate:
    """Ensure test fixtures meet validation requirements."""

    def test_raw_fix_fixture(self):
        """create_fix builds a valid raw fix."""
        validate_row_for_step(create_fix(), FixModel, "load_data")

    def test_raw_fix_without_origin(self):
        """Null origin columns are allowed on the raw stream."""
        validate_row_for_step(create_fix(origin=None), FixModel, "load_data")

    def test_trip_fix_rows(self):
        """Rows produced by get_trips validate for the summary step."""
        prepared = prepare_tracks(fixes=fixes_frame(colony_scenario()))
        trip_fixes = get_trips(fixes=prepared["fixes"], origins=prepared["origins"], gap_time=2)[
            "trip_fixes"
        ]

        for row in trip_fixes.iter_rows(named=True):
            validate_row_for_step(row, TripFixModel, "build_trip_summaries")
