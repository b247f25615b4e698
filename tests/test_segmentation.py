"""Tests for trip segmentation against the inner buffer."""

import polars as pl
import pytest

from processing.origins import PerIndividualOrigin, SharedOrigin
from processing.trips.segmentation import (
    add_origin_distance,
    assign_trip_ids,
    expr_elapsed_hours,
    split_tracking_sessions,
)
from tests.fixtures import COLONY, NEST_A, complete_trip, distance_frame, prepared_fixes
from track_canon.codebook.trips import NON_TRIP_ID
from track_canon.core.exceptions import UnresolvedOriginError


class TestAssignTripIds:
    """Test trip numbering from distances to the origin."""

    def test_run_outside_buffer_is_one_trip(self):
        """Consecutive fixes outside the buffer form one trip."""
        fixes = distance_frame([2, 10, 15, 3])

        result = assign_trip_ids(fixes, inner_buffer=5)

        assert result["trip_id"].to_list() == [NON_TRIP_ID, 1, 1, NON_TRIP_ID]

    def test_rows_preserved(self):
        """Segmentation never adds, drops or reorders fixes."""
        fixes = distance_frame([0, 5000, 8000, 4000, 0, 0, 3000, 9000, 6000, 2000, 0])

        result = assign_trip_ids(fixes, inner_buffer=1000)

        assert len(result) == len(fixes)
        assert result.drop("trip_id").equals(fixes)

    def test_on_buffer_is_at_origin(self):
        """A fix exactly on the inner buffer counts as at the origin."""
        fixes = distance_frame([0, 1000, 1001, 1000])

        result = assign_trip_ids(fixes, inner_buffer=1000)

        assert result["trip_id"].to_list() == [NON_TRIP_ID, NON_TRIP_ID, 1, NON_TRIP_ID]

    def test_trips_numbered_in_time_order(self):
        """Each excursion gets the next trip id."""
        fixes = distance_frame([0, 5000, 0, 5000, 5000, 0, 5000])

        result = assign_trip_ids(fixes, inner_buffer=1000)

        assert result["trip_id"].to_list() == [-1, 1, -1, 2, 2, -1, 3]

    def test_track_starting_away(self):
        """A track that starts away from the origin starts with a trip."""
        fixes = distance_frame([8000, 9000, 0, 7000])

        result = assign_trip_ids(fixes, inner_buffer=1000)

        assert result["trip_id"].to_list() == [1, 1, -1, 2]

    def test_numbering_restarts_per_individual(self):
        """Trip ids run from 1 for every individual."""
        fixes = pl.concat(
            [
                distance_frame([0, 5000, 0, 5000], individual_id="A01"),
                distance_frame([5000, 0, 5000, 5000], individual_id="B07"),
            ]
        )

        result = assign_trip_ids(fixes, inner_buffer=1000)

        assert result["trip_id"].to_list() == [-1, 1, -1, 2, 1, -1, 2, 2]

    def test_never_leaves_origin(self):
        """An individual that stays home has no trips."""
        fixes = distance_frame([0, 200, 900, 0])

        result = assign_trip_ids(fixes, inner_buffer=1000)

        assert set(result["trip_id"].to_list()) == {NON_TRIP_ID}

    def test_gap_limit_splits_sessions(self):
        """A trip never spans two tracking sessions."""
        day = 24
        fixes = distance_frame([5000, 6000, 7000, 8000], hours=[0, 1, 150 * day, 150 * day + 1])

        split = assign_trip_ids(fixes, inner_buffer=1000, gap_limit=100)
        unsplit = assign_trip_ids(fixes, inner_buffer=1000, gap_limit=None)

        assert split["trip_id"].to_list() == [1, 1, 2, 2]
        assert unsplit["trip_id"].to_list() == [1, 1, 1, 1]

    def test_min_duration_demotes_short_trips(self):
        """Trips shorter than min_duration hours become non-trip fixes."""
        fixes = distance_frame([0, 5000, 0, 5000, 6000, 7000, 0])

        result = assign_trip_ids(fixes, inner_buffer=1000, min_duration=1.0)

        assert result["trip_id"].to_list() == [-1, -1, -1, 1, 1, 1, -1]

    def test_min_duration_zero_keeps_everything(self):
        """The default keeps single-fix trips."""
        fixes = distance_frame([0, 5000, 0])

        result = assign_trip_ids(fixes, inner_buffer=1000, min_duration=0.0)

        assert result["trip_id"].to_list() == [-1, 1, -1]

    def test_reassigning_is_stable(self):
        """Running segmentation on its own output gives the same ids."""
        fixes = distance_frame([0, 5000, 0, 5000, 6000, 0])

        once = assign_trip_ids(fixes, inner_buffer=1000)
        twice = assign_trip_ids(once, inner_buffer=1000)

        assert twice.equals(once)

    def test_temporary_columns_dropped(self):
        """Only trip_id is added."""
        fixes = distance_frame([0, 5000, 0])

        result = assign_trip_ids(fixes, inner_buffer=1000, gap_limit=100, min_duration=1)

        assert result.columns == [*fixes.columns, "trip_id"]


class TestSplitTrackingSessions:
    """Test tracking session numbering."""

    def test_sessions_numbered_from_zero(self):
        """A new session starts after a break longer than gap_limit days."""
        day = 24
        fixes = distance_frame([0, 0, 0, 0], hours=[0, 1, 3 * day, 3 * day + 1])

        result = split_tracking_sessions(fixes, gap_limit=2)

        assert result["_session"].to_list() == [0, 0, 1, 1]

    def test_disabled(self):
        """gap_limit None keeps one session per individual."""
        fixes = distance_frame([0, 0], hours=[0, 1000])

        result = split_tracking_sessions(fixes, gap_limit=None)

        assert result["_session"].to_list() == [0, 0]


class TestAddOriginDistance:
    """Test distances from fixes to their origin."""

    def test_shared_origin(self):
        """Distances are measured to the shared colony."""
        fixes = prepared_fixes(complete_trip())

        result = add_origin_distance(fixes, SharedOrigin(point=COLONY.point))

        assert result["origin_distance"].to_list() == pytest.approx(
            [0, 5000, 25000, 20000, 5000, 0], abs=1e-6
        )
        assert result.columns == [*fixes.columns, "origin_distance"]

    def test_per_individual_origin(self):
        """Each individual is measured to its own nest."""
        fixes = prepared_fixes(complete_trip(origin=NEST_A))
        resolver = PerIndividualOrigin(mapping={"A01": NEST_A.point})

        result = add_origin_distance(fixes, resolver)

        assert result["origin_distance"][2] == pytest.approx(25000)

    def test_planar_distances(self):
        """Projected coordinates use Euclidean distance."""
        fixes = pl.DataFrame(
            {
                "individual_id": ["A01", "A01"],
                "longitude": [3.0, 100.0],
                "latitude": [4.0, 0.0],
            }
        )

        result = add_origin_distance(fixes, SharedOrigin(point=(0.0, 0.0)), lonlat=False)

        assert result["origin_distance"].to_list() == pytest.approx([5.0, 100.0])

    def test_unresolved_individual_raises(self):
        """An individual without an origin raises."""
        fixes = prepared_fixes(complete_trip("Z99"))
        resolver = PerIndividualOrigin(mapping={"A01": NEST_A.point})

        with pytest.raises(UnresolvedOriginError):
            add_origin_distance(fixes, resolver)


def test_expr_elapsed_hours():
    """Elapsed hours are measured from the previous timestamp."""
    fixes = distance_frame([0, 0, 0], hours=[0, 1.5, 4])

    result = fixes.select(expr_elapsed_hours().alias("hours"))["hours"].to_list()

    assert result[0] is None
    assert result[1:] == pytest.approx([1.5, 2.5])
