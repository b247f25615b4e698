"""Tests for the trip extraction step."""

import polars as pl
import pytest
from pydantic import ValidationError

from processing.origins import prepare_tracks
from processing.trips import TripConfig, extract_trips, get_trips
from tests.fixtures import (
    COLONY,
    METRES_PER_DEGREE_LAT,
    NEST_A,
    NEST_B,
    colony_scenario,
    complete_trip,
    fixes_frame,
    origins_frame,
    prepared_fixes,
    two_trips,
)
from track_canon.codebook.trips import NON_TRIP_ID, TripType

TRIP_FIX_COLUMNS = [
    "individual_id",
    "timestamp",
    "longitude",
    "latitude",
    "origin_distance",
    "trip_id",
    "diff_time",
    "diff_dist",
    "gap",
    "trip_section",
    "trip_type",
]


def prepared(records: list[dict]) -> dict[str, pl.DataFrame]:
    """Run prepare_tracks on raw records."""
    return prepare_tracks(fixes=fixes_frame(records))


def trip_types(trip_fixes: pl.DataFrame) -> dict[tuple[str, int], str]:
    """Map (individual_id, trip_id) of real trips to their type."""
    trips = (
        trip_fixes.filter(pl.col("trip_id") != NON_TRIP_ID)
        .select("individual_id", "trip_id", "trip_type")
        .unique()
    )
    return {(ind, trip): trip_type for ind, trip, trip_type in trips.iter_rows()}


def metres_north_projector(points, target_crs):  # noqa: ARG001
    """Fake projection: metres east/north of COLONY along the meridian."""
    return [
        ((lon - COLONY.lon) * 1000.0, (lat - COLONY.lat) * METRES_PER_DEGREE_LAT)
        for lon, lat in points
    ]


class TestTripConfig:
    """Test trip extraction parameter validation."""

    def test_defaults(self):
        """Defaults follow the documented units."""
        config = TripConfig()

        assert config.inner_buffer == 1000.0
        assert config.return_buffer == 10000.0
        assert config.gap_time == 12.0
        assert config.gap_dist == 5000.0
        assert config.gap_limit == 100.0
        assert config.max_workers == 1
        assert config.planar is False

    def test_return_buffer_narrower_than_inner(self):
        """The return buffer may not be smaller than the inner buffer."""
        with pytest.raises(ValidationError, match="return_buffer"):
            TripConfig(inner_buffer=5000, return_buffer=1000)

    def test_negative_buffer(self):
        """Buffers are non-negative."""
        with pytest.raises(ValidationError):
            TripConfig(inner_buffer=-1)

    @pytest.mark.parametrize(
        ("lonlat", "crs", "planar"),
        [(True, None, False), (False, None, True), (True, "auto", True)],
    )
    def test_planar(self, lonlat, crs, planar):
        """Distances are planar for projected input or a target CRS."""
        assert TripConfig(lonlat=lonlat, crs=crs).planar is planar


class TestExtractTrips:
    """Test segmentation and classification of whole datasets."""

    def test_colony_scenario_types(self):
        """Each scenario bird gets the expected trip type."""
        data = prepared(colony_scenario())

        trip_fixes, log = extract_trips(data["fixes"], data["origins"], TripConfig(gap_time=2))

        assert len(log) == 0
        assert trip_types(trip_fixes) == {
            ("A01", 1): TripType.COMPLETE.label,
            ("B07", 1): TripType.GAPPY.label,
            ("C03", 1): TripType.INCOMPLETE.label,
            ("D11", 1): TripType.NON_TRIP.label,
        }

    def test_every_fix_kept_and_sorted(self):
        """Output has one row per input fix, sorted by individual and time."""
        data = prepared(colony_scenario())

        trip_fixes, _ = extract_trips(data["fixes"], data["origins"], TripConfig())

        assert len(trip_fixes) == len(data["fixes"])
        assert trip_fixes.columns == TRIP_FIX_COLUMNS
        assert trip_fixes.select("individual_id", "timestamp").equals(
            data["fixes"].select("individual_id", "timestamp")
        )

    def test_multiple_trips(self):
        """Trips are numbered per individual in time order."""
        data = prepared(two_trips("E02"))

        trip_fixes, _ = extract_trips(data["fixes"], data["origins"], TripConfig())

        assert trip_fixes["trip_id"].to_list() == [-1, 1, 1, 1, -1, -1, 2, 2, 2, 2, -1]
        assert set(trip_types(trip_fixes).values()) == {TripType.COMPLETE.label}

    def test_per_individual_origins(self):
        """Each bird is measured from its own nest."""
        data = prepared(
            [*complete_trip("A01", origin=NEST_A), *complete_trip("B07", origin=NEST_B)]
        )

        trip_fixes, log = extract_trips(data["fixes"], data["origins"], TripConfig())

        assert len(log) == 0
        peaks = trip_fixes.group_by("individual_id").agg(pl.col("origin_distance").max())
        assert peaks["origin_distance"].to_list() == pytest.approx([25000.0, 25000.0])

    def test_unresolved_individual_reported(self):
        """An individual without an origin is skipped and reported."""
        fixes = prepared_fixes([*complete_trip("A01", origin=NEST_A), *complete_trip("B07")])
        origins = origins_frame({"A01": NEST_A, "C03": NEST_B})

        trip_fixes, log = extract_trips(fixes, origins, TripConfig())

        issues = log.to_frame()
        assert issues.select("error", "individual_id").rows() == [
            ("InsufficientDataError", "C03"),
            ("UnresolvedOriginError", "B07"),
        ]
        assert trip_fixes["individual_id"].unique().to_list() == ["A01"]

    def test_unresolved_ids_skipped(self):
        """Individuals already reported as unresolved are left out without a new issue."""
        fixes = prepared_fixes(
            [*complete_trip("A01", origin=NEST_A), *complete_trip("B07", origin=NEST_A)]
        )

        trip_fixes, log = extract_trips(
            fixes, origins_frame({"A01": NEST_A}), TripConfig(), unresolved_ids=["B07"]
        )

        assert len(log) == 0
        assert trip_fixes["individual_id"].unique().to_list() == ["A01"]
        assert trip_types(trip_fixes) == {("A01", 1): TripType.COMPLETE.label}

    def test_no_individual_processed(self):
        """When every individual fails the output is empty, not an error."""
        fixes = prepared_fixes(complete_trip("B07"))
        origins = origins_frame({"A01": NEST_A, "C03": NEST_B})

        trip_fixes, log = extract_trips(fixes, origins, TripConfig())

        assert trip_fixes.is_empty()
        assert trip_fixes.columns == TRIP_FIX_COLUMNS
        assert len(log) == 2

    def test_threads_match_sequential(self):
        """Processing on a thread pool gives the same output."""
        data = prepared([*colony_scenario(), *two_trips("E02")])

        sequential, _ = extract_trips(data["fixes"], data["origins"], TripConfig())
        threaded, _ = extract_trips(
            data["fixes"], data["origins"], TripConfig(max_workers=4)
        )

        assert threaded.equals(sequential)

    def test_projection_keeps_input_coordinates(self):
        """With a target CRS distances are planar but coordinates are unchanged."""
        data = prepared(colony_scenario())
        config = TripConfig(crs="auto", gap_time=2)

        projected, _ = extract_trips(
            data["fixes"], data["origins"], config, projector=metres_north_projector
        )
        geographic, _ = extract_trips(data["fixes"], data["origins"], TripConfig(gap_time=2))

        assert projected["longitude"].equals(data["fixes"]["longitude"])
        assert projected["latitude"].equals(data["fixes"]["latitude"])
        assert projected["trip_id"].equals(geographic["trip_id"])
        assert projected["trip_type"].equals(geographic["trip_type"])
        assert projected["origin_distance"].to_list() == pytest.approx(
            geographic["origin_distance"].to_list(), abs=1e-6
        )

    def test_projector_receives_target_crs(self):
        """The configured CRS is passed through to the projector."""
        seen = set()

        def recording_projector(points, target_crs):
            seen.add(target_crs)
            return metres_north_projector(points, target_crs)

        data = prepared(complete_trip())
        extract_trips(
            data["fixes"], data["origins"], TripConfig(crs="EPSG:3035"), recording_projector
        )

        assert seen == {"EPSG:3035"}


class TestGetTripsStep:
    """Test the get_trips step wrapper."""

    def test_returns_trip_fixes_and_issues(self):
        """The step returns canonical tables."""
        data = prepared(colony_scenario())

        result = get_trips(fixes=data["fixes"], origins=data["origins"], gap_time=2)

        assert set(result) == {"trip_fixes", "issues"}
        assert result["trip_fixes"].columns == TRIP_FIX_COLUMNS

    def test_issues_appended(self):
        """Issues from this step follow those of earlier steps."""
        earlier = pl.DataFrame(
            {
                "stage": ["load_data"],
                "error": ["Other"],
                "individual_id": ["X"],
                "trip_id": [None],
                "message": ["earlier"],
            },
            schema_overrides={"trip_id": pl.Int64},
        )
        fixes = prepared_fixes([*complete_trip("A01", origin=NEST_A), *complete_trip("C03")])
        origins = origins_frame({"A01": NEST_A, "B07": NEST_B})

        result = get_trips(fixes=fixes, origins=origins, issues=earlier)

        assert result["issues"].select("stage", "error", "individual_id").rows() == [
            ("load_data", "Other", "X"),
            ("get_trips", "InsufficientDataError", "B07"),
            ("get_trips", "UnresolvedOriginError", "C03"),
        ]

    def test_conflicting_origin_skipped(self):
        """A bird prepare_tracks reported for conflicting origins is not segmented.

        Dropping it leaves a single distinct origin in the origins table, which
        must not turn into a shared colony the bird then resolves to.
        """
        records = [*complete_trip("A01", origin=NEST_A), *complete_trip("B07", origin=NEST_A)]
        records[6] = {
            **records[6],
            "origin_longitude": NEST_B.lon,
            "origin_latitude": NEST_B.lat,
        }
        data = prepared(records)
        assert data["origins"]["individual_id"].to_list() == ["A01"]

        result = get_trips(fixes=data["fixes"], origins=data["origins"], issues=data["issues"])

        assert result["trip_fixes"]["individual_id"].unique().to_list() == ["A01"]
        assert result["issues"].select("stage", "error", "individual_id").rows() == [
            ("prepare_tracks", "UnresolvedOriginError", "B07"),
        ]

    def test_invalid_parameters(self):
        """Parameters are validated before any work."""
        data = prepared(complete_trip())

        with pytest.raises(ValidationError):
            get_trips(
                fixes=data["fixes"],
                origins=data["origins"],
                inner_buffer=20000,
                return_buffer=10000,
            )

    def test_output_validates(self):
        """Step output passes trip_fixes validation."""
        data = prepared(colony_scenario())

        result = get_trips(
            fixes=data["fixes"],
            origins=data["origins"],
            gap_time=2,
            validate_input=True,
            validate_output=True,
        )

        assert len(result["trip_fixes"]) == len(data["fixes"])
