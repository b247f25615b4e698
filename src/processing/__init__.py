"""Initialization of the steps module for central-place trip processing.

This module imports and exposes all step functions for easy access.
"""

from .final_check.final_check import final_check
from .interpolation import interpolate_trips
from .origins import prepare_tracks
from .read_write import load_data, write_data
from .trips import build_trip_summaries, get_trips

__all__ = [
    "build_trip_summaries",
    "final_check",
    "get_trips",
    "interpolate_trips",
    "load_data",
    "prepare_tracks",
    "write_data",
]
