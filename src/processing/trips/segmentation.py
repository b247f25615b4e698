"""Segment fix sequences into trips away from the origin.

A fix is "at the origin" when it lies within the inner buffer. Every maximal
run of consecutive fixes outside the buffer is a trip. Trip ids are numbered
1, 2, ... per individual in time order; fixes at the origin get NON_TRIP_ID.

All functions work on frames holding one or many individuals. Input must be
sorted by (individual_id, timestamp); nothing here re-sorts, so the output
rows line up one-to-one with the input rows.
"""

import logging

import polars as pl

from track_canon.codebook.trips import NON_TRIP_ID
from utils.helpers import expr_distance

from ..origins.resolver import OriginResolver, origin_table

logger = logging.getLogger(__name__)

HOURS_MS = 3_600_000
DAYS_MS = 24 * HOURS_MS


def expr_elapsed_hours(col: str = "timestamp") -> pl.Expr:
    """Hours between a timestamp and the previous one (null for the first)."""
    return pl.col(col).diff().dt.total_milliseconds() / HOURS_MS


def add_origin_distance(
    fixes: pl.DataFrame,
    resolver: OriginResolver,
    lonlat: bool = True,
) -> pl.DataFrame:
    """Add origin_distance (metres) from each fix to its individual's origin.

    Raises:
        UnresolvedOriginError: For the first individual the resolver cannot
            place
    """
    individual_ids = fixes["individual_id"].unique(maintain_order=True).to_list()
    origins, errors = origin_table(resolver, individual_ids)
    if errors:
        raise errors[0]

    return (
        fixes.drop("origin_distance", strict=False)
        .join(origins, on="individual_id", how="left", maintain_order="left")
        .with_columns(
            expr_distance(
                pl.col("origin_latitude"),
                pl.col("origin_longitude"),
                pl.col("latitude"),
                pl.col("longitude"),
                lonlat=lonlat,
            ).alias("origin_distance")
        )
        .drop("origin_longitude", "origin_latitude")
    )


def split_tracking_sessions(
    fixes: pl.DataFrame,
    gap_limit: float | None,
) -> pl.DataFrame:
    """Number tracking sessions per individual in a _session column.

    A new session starts whenever two consecutive fixes of an individual are
    more than gap_limit days apart. With gap_limit None every individual is a
    single session.
    """
    if gap_limit is None:
        return fixes.with_columns(pl.lit(0, dtype=pl.Int64).alias("_session"))

    breaks = (
        (pl.col("timestamp").diff().dt.total_milliseconds() / DAYS_MS > gap_limit)
        .fill_null(False)
        .cast(pl.Int64)
    )
    sessions = fixes.with_columns(breaks.cum_sum().over("individual_id").alias("_session"))

    n_breaks = sessions.filter(pl.col("_session") > 0).select(
        pl.struct("individual_id", "_session").n_unique()
    ).item()
    if n_breaks:
        logger.info(
            "Split %d additional tracking session(s) at gaps over %.1f days",
            n_breaks,
            gap_limit,
        )
    return sessions


def assign_trip_ids(
    fixes: pl.DataFrame,
    inner_buffer: float,
    gap_limit: float | None = None,
    min_duration: float = 0.0,
) -> pl.DataFrame:
    """Assign trip_id to every fix.

    Args:
        fixes: Fixes with origin_distance, sorted by individual and time
        inner_buffer: Distance in metres at or below which a fix is at the
            origin
        gap_limit: Days between fixes that split tracking sessions
        min_duration: Trips shorter than this many hours become non-trip
            fixes and the remaining trips are renumbered

    Returns:
        Fixes with trip_id added (same rows, same order)
    """
    away = pl.col("origin_distance") > inner_buffer

    segmented = (
        split_tracking_sessions(fixes.drop("trip_id", strict=False), gap_limit)
        .with_columns(away.alias("_away"))
        .with_columns(
            (
                pl.col("_away")
                & (
                    ~pl.col("_away").shift(1, fill_value=False)
                    | (pl.col("_session") != pl.col("_session").shift(1))
                ).fill_null(True)
            )
            .over("individual_id")
            .alias("_run_start")
        )
        .with_columns(
            pl.when(pl.col("_away"))
            .then(pl.col("_run_start").cast(pl.Int64).cum_sum().over("individual_id"))
            .otherwise(pl.lit(NON_TRIP_ID))
            .cast(pl.Int64)
            .alias("trip_id")
        )
    )

    if min_duration > 0:
        segmented = _drop_short_trips(segmented, min_duration)

    n_trips = segmented.filter(pl.col("trip_id") != NON_TRIP_ID).select(
        pl.struct("individual_id", "trip_id").n_unique()
    ).item()
    logger.debug("Assigned %d trips across %d fixes", n_trips, len(segmented))

    return segmented.drop("_away", "_run_start", "_session")


def _drop_short_trips(segmented: pl.DataFrame, min_duration: float) -> pl.DataFrame:
    """Demote trips shorter than min_duration hours and renumber the rest."""
    key = ["individual_id", "trip_id"]
    trip_hours = (
        pl.col("timestamp").max() - pl.col("timestamp").min()
    ).dt.total_milliseconds() / HOURS_MS

    demoted = segmented.with_columns(
        pl.when(
            (pl.col("trip_id") != NON_TRIP_ID)
            & (trip_hours.over(key) < min_duration)
        )
        .then(pl.lit(NON_TRIP_ID))
        .otherwise(pl.col("trip_id"))
        .cast(pl.Int64)
        .alias("trip_id")
    )

    n_demoted = segmented.select(pl.struct(key).n_unique()).item() - demoted.select(
        pl.struct(key).n_unique()
    ).item()
    if n_demoted:
        logger.info("Demoted %d trip(s) shorter than %.2f hours", n_demoted, min_duration)

    # Consecutive kept trips keep distinct old ids, so a change of id marks a start
    kept = pl.col("trip_id") != NON_TRIP_ID
    new_start = kept & (
        pl.col("trip_id") != pl.col("trip_id").shift(1).over("individual_id")
    ).fill_null(True)
    return demoted.with_columns(
        pl.when(kept)
        .then(new_start.cast(pl.Int64).cum_sum().over("individual_id"))
        .otherwise(pl.lit(NON_TRIP_ID))
        .cast(pl.Int64)
        .alias("trip_id")
    )
