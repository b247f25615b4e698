"""Test fixtures for central-place trip processing tests.

Modules:
    - locations: Site, COLONY, NEST_A, NEST_B
    - track_records: create_fix, create_track, fixes_frame, origins_frame
    - scenario_builders: complete_trip, gappy_trip, incomplete_trip, etc.
"""

from .locations import COLONY, METRES_PER_DEGREE_LAT, NEST_A, NEST_B, Site
from .scenario_builders import (
    colony_scenario,
    complete_trip,
    gappy_trip,
    incomplete_trip,
    short_trip,
    two_trips,
)
from .track_records import (
    START,
    create_fix,
    create_track,
    distance_frame,
    fixes_frame,
    origins_frame,
    prepared_fixes,
)

__all__ = [
    "COLONY",
    "METRES_PER_DEGREE_LAT",
    "NEST_A",
    "NEST_B",
    "START",
    "Site",
    "colony_scenario",
    "complete_trip",
    "create_fix",
    "create_track",
    "distance_frame",
    "fixes_frame",
    "gappy_trip",
    "incomplete_trip",
    "origins_frame",
    "prepared_fixes",
    "short_trip",
    "two_trips",
]
