"""Custom validation checks for tracking data.

This module contains DataFrame-level checks that run during the custom
validator phase (after row-level validation). They cover rules spanning
several rows, which a per-row Pydantic model cannot express.

To add a new check:
1. Define a function whose parameter names are canonical table names and
   which returns list[str] of error messages
2. Add it to CUSTOM_VALIDATORS below under the table it belongs to

Trip type uniformity is deliberately not registered here: it is reported
per trip by the summarizer instead of failing the whole table.
"""

from collections.abc import Callable

import polars as pl

from track_canon.codebook.trips import NON_TRIP_ID

TRIP_KEY = ["individual_id", "trip_id"]


def check_trip_sections_monotonic(trip_fixes: pl.DataFrame) -> list[str]:
    """Trip sections start at 1 and only step up by one, at gap flags."""
    errors = []

    checked = (
        trip_fixes.sort([*TRIP_KEY, "timestamp"], maintain_order=True)
        .with_columns(
            (pl.col("trip_section") - pl.col("trip_section").shift(1))
            .over(TRIP_KEY)
            .alias("_step"),
            pl.col("trip_section").first().over(TRIP_KEY).alias("_first"),
        )
        .filter(
            (pl.col("_first") != 1)
            | (pl.col("_step").is_not_null() & (pl.col("_step") != pl.col("gap").cast(pl.Int64)))
        )
    )

    if len(checked) > 0:
        sample = checked.select(TRIP_KEY).unique(maintain_order=True).rows()[:5]
        errors.append(
            f"Found {len(checked)} fixes where trip_section does not start at 1 "
            f"or does not advance exactly at gaps. Sample trips: {sample}"
        )
    return errors


def check_trip_ids_sequential(trip_fixes: pl.DataFrame) -> list[str]:
    """Trip ids per individual run 1..n in chronological order."""
    errors = []

    first_fix = (
        trip_fixes.filter(pl.col("trip_id") != NON_TRIP_ID)
        .group_by(TRIP_KEY)
        .agg(pl.col("timestamp").min().alias("_start"))
        .sort(["individual_id", "_start"])
        .with_columns(
            pl.int_range(1, pl.len() + 1).over("individual_id").alias("_expected")
        )
        .filter(pl.col("trip_id") != pl.col("_expected"))
    )

    if len(first_fix) > 0:
        individuals = first_fix["individual_id"].unique().to_list()[:5]
        errors.append(
            f"Trip ids are not sequential in time for {len(individuals)} "
            f"individual(s). Sample: {individuals}"
        )
    return errors


def check_summary_keys_unique(trips: pl.DataFrame) -> list[str]:
    """A trip summary has exactly one row per (individual, trip)."""
    dupes = trips.group_by(TRIP_KEY).len().filter(pl.col("len") > 1)
    if len(dupes) > 0:
        return [
            f"Found {len(dupes)} duplicated (individual_id, trip_id) rows. "
            f"Sample: {dupes.select(TRIP_KEY).rows()[:5]}"
        ]
    return []


def check_interpolated_summary_keys_unique(interpolated_trips: pl.DataFrame) -> list[str]:
    """An interpolated trip summary has one row per (individual, trip)."""
    return check_summary_keys_unique(interpolated_trips)


# Registry of custom validators
# Format: {table_name: [check_function1, check_function2, ...]}
CUSTOM_VALIDATORS: dict[str, list[Callable]] = {
    "fixes": [],
    "origins": [],
    "trip_fixes": [check_trip_sections_monotonic, check_trip_ids_sequential],
    "interpolated_fixes": [],
    "trips": [check_summary_keys_unique],
    "interpolated_trips": [check_interpolated_summary_keys_unique],
    "issues": [],
}
