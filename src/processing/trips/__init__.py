"""Trip segmentation, classification and summaries.

Splits each individual's fixes into trips away from its origin, flags gaps,
assigns a trip type and summarizes trips for reporting.
"""

from .extraction import extract_trips, get_trips
from .summary import build_trip_summaries, summarize_interpolated_trips, summarize_trips
from .trip_configs import TripConfig

__all__ = [
    "TripConfig",
    "build_trip_summaries",
    "extract_trips",
    "get_trips",
    "summarize_interpolated_trips",
    "summarize_trips",
]
