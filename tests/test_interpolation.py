"""Tests for trip interpolation: config, engine and adapter."""

from datetime import timedelta

import polars as pl
import pytest
from pydantic import ValidationError

from processing.interpolation import InterpolationConfig, LinearInterpolator, interpolate_trips
from processing.interpolation.adapter import select_tracks
from processing.origins import prepare_tracks
from processing.trips import get_trips
from tests.fixtures import START, complete_trip, fixes_frame, gappy_trip, incomplete_trip
from track_canon.codebook.trips import TripType


def run_get_trips(records: list[dict], **params) -> dict[str, pl.DataFrame]:
    """Prepare raw fix records and extract trips."""
    prepared = prepare_tracks(fixes=fixes_frame(records))
    result = get_trips(fixes=prepared["fixes"], origins=prepared["origins"], **params)
    return {"origins": prepared["origins"], **result}


def track(times_h: list[float], lons: list[float], lats: list[float], track_id: int = 1):
    """An engine input track."""
    return pl.DataFrame(
        {
            "track_id": [track_id] * len(times_h),
            "timestamp": [START + timedelta(hours=h) for h in times_h],
            "longitude": lons,
            "latitude": lats,
        }
    )


class TestInterpolationConfig:
    """Test interpolation parameter validation."""

    def test_defaults(self):
        """Complete and Incomplete trips every 10 minutes across gaps."""
        config = InterpolationConfig()

        assert config.trip_types == ["Complete", "Incomplete"]
        assert config.timestep == "10m"
        assert config.interpolate_gaps is True
        assert config.method == "linear"

    def test_unknown_trip_type(self):
        """Trip types must be known labels."""
        with pytest.raises(ValidationError, match="Unknown trip types"):
            InterpolationConfig(trip_types=["Complete", "Partial"])

    def test_empty_trip_types(self):
        """At least one trip type must be selected."""
        with pytest.raises(ValidationError):
            InterpolationConfig(trip_types=[])

    @pytest.mark.parametrize("timestep", ["10 minutes", "", "0m", "m10"])
    def test_invalid_timestep(self, timestep):
        """Timesteps must be positive Polars duration strings."""
        with pytest.raises(ValidationError):
            InterpolationConfig(timestep=timestep)

    @pytest.mark.parametrize("timestep", ["30s", "10m", "1h30m", "1d"])
    def test_valid_timestep(self, timestep):
        """Compound durations are accepted."""
        assert InterpolationConfig(timestep=timestep).timestep == timestep


class TestLinearInterpolator:
    """Test the bundled straight-line engine."""

    def test_midpoints(self):
        """Positions are interpolated linearly in time."""
        tracks = track([0, 1], [0.0, 1.0], [0.0, 2.0])

        result = LinearInterpolator()(tracks, "30m")

        assert result["longitude"].to_list() == pytest.approx([0.0, 0.5, 1.0])
        assert result["latitude"].to_list() == pytest.approx([0.0, 1.0, 2.0])
        assert result["timestamp"].to_list() == [
            START,
            START + timedelta(minutes=30),
            START + timedelta(hours=1),
        ]

    def test_grid_spans_track(self):
        """The grid runs from the first fix to the last at timestep intervals."""
        tracks = track([0, 0.5, 2], [0.0, 1.0, 4.0], [0.0, 0.0, 0.0])

        result = LinearInterpolator()(tracks, "10m")

        assert len(result) == 13
        assert result["timestamp"].min() == START
        assert result["timestamp"].max() == START + timedelta(hours=2)

    def test_grid_stops_before_end(self):
        """The grid never extends past the last fix."""
        tracks = track([0, 1], [0.0, 1.0], [0.0, 1.0])

        result = LinearInterpolator()(tracks, "25m")

        assert result["timestamp"].max() == START + timedelta(minutes=50)
        assert result["longitude"].to_list() == pytest.approx([0.0, 25 / 60, 50 / 60])

    def test_tracks_kept_apart(self):
        """Each track is interpolated on its own."""
        tracks = pl.concat(
            [
                track([0, 1], [0.0, 1.0], [0.0, 0.0], track_id=1),
                track([0, 1], [10.0, 12.0], [0.0, 0.0], track_id=2),
            ]
        )

        result = LinearInterpolator()(tracks, "30m")

        second = result.filter(pl.col("track_id") == 2)
        assert second["longitude"].to_list() == pytest.approx([10.0, 11.0, 12.0])

    def test_duplicate_timestamps(self):
        """Repeated observations at one instant do not duplicate grid fixes."""
        tracks = track([0, 0, 1], [0.0, 0.0, 1.0], [0.0, 0.0, 1.0])

        result = LinearInterpolator()(tracks, "30m")

        assert len(result) == 3

    def test_empty(self):
        """No tracks in, no fixes out."""
        tracks = track([], [], [])

        result = LinearInterpolator()(tracks, "10m")

        assert result.is_empty()
        assert result.columns == ["track_id", "timestamp", "longitude", "latitude"]


class TestSelectTracks:
    """Test choosing which trips are interpolated."""

    def test_default_types(self):
        """Gappy and Non-trip trips are left out by default."""
        trip_fixes = run_get_trips(
            [*complete_trip("A01"), *gappy_trip("B07"), *incomplete_trip("C03")],
            gap_time=2,
        )["trip_fixes"]

        _, lookup = select_tracks(trip_fixes, InterpolationConfig())

        assert lookup["individual_id"].to_list() == ["A01", "C03"]
        assert lookup["track_id"].to_list() == [1, 2]

    def test_sections_as_tracks(self):
        """Without gap interpolation each long enough section is a track."""
        trip_fixes = run_get_trips(gappy_trip("B07"), gap_time=2)["trip_fixes"]
        config = InterpolationConfig(trip_types=["Gappy"], interpolate_gaps=False)

        tracks, lookup = select_tracks(trip_fixes, config)

        # Section 2 has only two fixes
        assert lookup.select("trip_id", "trip_section").rows() == [(1, 1)]
        assert len(tracks) == 3


class TestInterpolateTripsStep:
    """Test the interpolate_trips step."""

    def test_hourly_complete_trip(self):
        """A 6 hour trip interpolated hourly gives 7 fixes."""
        data = run_get_trips(complete_trip("A01"))

        result = interpolate_trips(
            trip_fixes=data["trip_fixes"], origins=data["origins"], timestep="1h"
        )

        fixes = result["interpolated_fixes"]
        assert len(fixes) == 7
        assert set(fixes["trip_type"].to_list()) == {TripType.COMPLETE.label}
        assert fixes["trip_id"].unique().to_list() == [1]
        assert fixes.columns == [
            "individual_id",
            "trip_id",
            "trip_section",
            "timestamp",
            "longitude",
            "latitude",
            "origin_distance",
            "trip_type",
        ]

    def test_origin_distance_recomputed(self):
        """Distances are measured on the interpolated positions."""
        data = run_get_trips(complete_trip("A01"))

        fixes = interpolate_trips(
            trip_fixes=data["trip_fixes"], origins=data["origins"], timestep="1h"
        )["interpolated_fixes"]

        # Hour 2 lies halfway between the 5 km and 25 km fixes
        assert fixes["origin_distance"].to_list()[:3] == pytest.approx(
            [5000.0, 15000.0, 25000.0], rel=1e-6
        )

    def test_injected_engine(self):
        """Any callable with the engine signature can be injected."""
        seen = []

        def passthrough(tracks, timestep):
            seen.append(timestep)
            return tracks

        data = run_get_trips(complete_trip("A01"))

        fixes = interpolate_trips(
            trip_fixes=data["trip_fixes"],
            origins=data["origins"],
            timestep="2h",
            interpolator=passthrough,
        )["interpolated_fixes"]

        assert seen == ["2h"]
        assert len(fixes) == 4

    def test_selected_types(self):
        """Only the requested trip types are interpolated."""
        data = run_get_trips(
            [*complete_trip("A01"), *gappy_trip("B07")],
            gap_time=2,
        )

        fixes = interpolate_trips(
            trip_fixes=data["trip_fixes"],
            origins=data["origins"],
            trip_types=["Gappy"],
            timestep="1h",
        )["interpolated_fixes"]

        assert fixes["individual_id"].unique().to_list() == ["B07"]
        assert set(fixes["trip_type"].to_list()) == {TripType.GAPPY.label}

    def test_interpolation_across_gap(self):
        """With gap interpolation a gappy trip is one continuous track."""
        data = run_get_trips(gappy_trip("B07"), gap_time=2)

        fixes = interpolate_trips(
            trip_fixes=data["trip_fixes"],
            origins=data["origins"],
            trip_types=["Gappy"],
            timestep="1h",
        )["interpolated_fixes"]

        # Trip fixes span hours 1 to 9
        assert len(fixes) == 9
        assert fixes["trip_section"].is_null().all()
