"""Per-trip summaries of classified and interpolated fixes."""

import logging

import polars as pl

from pipeline.decoration import step
from track_canon.codebook.trips import NON_TRIP_ID
from track_canon.core.exceptions import HeterogeneousTripTypeError, MissingRawCountError
from track_canon.core.issues import IssueLog, append_issues

logger = logging.getLogger(__name__)

TRIP_KEY = ["individual_id", "trip_id"]


def _trip_aggregates(fixes: pl.DataFrame, count_col: str) -> pl.DataFrame:
    """Aggregate fixes to one row per trip, keeping the type count."""
    return (
        fixes.group_by(TRIP_KEY, maintain_order=True)
        .agg(
            pl.len().alias(count_col),
            pl.col("timestamp").min().alias("departure"),
            pl.col("timestamp").max().alias("return_time"),
            (pl.col("origin_distance").max() / 1000).alias("max_dist_km"),
            pl.col("trip_type").unique(maintain_order=True).alias("_types"),
        )
        .with_columns(
            (
                (pl.col("return_time") - pl.col("departure")).dt.total_milliseconds()
                / 3_600_000
            ).alias("duration"),
        )
        .sort(TRIP_KEY)
    )


def _split_heterogeneous(
    aggregated: pl.DataFrame,
) -> tuple[pl.DataFrame, list[HeterogeneousTripTypeError]]:
    """Drop trips carrying more than one trip type and report them."""
    mixed = aggregated.filter(pl.col("_types").list.len() > 1)
    errors = [
        HeterogeneousTripTypeError(
            message=f"Trip has {len(types)} trip types: {sorted(types)}",
            individual_id=individual_id,
            trip_id=trip_id,
        )
        for individual_id, trip_id, types in mixed.select(*TRIP_KEY, "_types").iter_rows()
    ]
    uniform = aggregated.filter(pl.col("_types").list.len() == 1).with_columns(
        pl.col("_types").list.first().alias("complete")
    )
    return uniform.drop("_types"), errors


def summarize_trips(
    trip_fixes: pl.DataFrame,
) -> tuple[pl.DataFrame, list[HeterogeneousTripTypeError]]:
    """Summarize classified fixes to one row per (individual, trip).

    The NON_TRIP_ID group of each individual is summarized like any other.

    Returns:
        Tuple of (trips table, errors for trips excluded because they carry
        more than one trip type)
    """
    aggregated = _trip_aggregates(trip_fixes, "n_locs")
    trips, errors = _split_heterogeneous(aggregated)
    trips = trips.select(
        *TRIP_KEY,
        "n_locs",
        "departure",
        "return_time",
        "duration",
        "max_dist_km",
        "complete",
    )
    return trips, errors


def summarize_interpolated_trips(
    interpolated_fixes: pl.DataFrame,
    trip_fixes: pl.DataFrame,
) -> tuple[pl.DataFrame, list[HeterogeneousTripTypeError | MissingRawCountError]]:
    """Summarize interpolated fixes and attach raw fix counts.

    Raw counts come from trip_fixes excluding NON_TRIP_ID fixes. Interpolated
    trips without a raw counterpart are excluded and reported.

    Returns:
        Tuple of (interpolated trips table, errors for excluded trips)
    """
    raw_counts = (
        trip_fixes.filter(pl.col("trip_id") != NON_TRIP_ID)
        .group_by(TRIP_KEY)
        .agg(pl.len().alias("raw_n_locs"))
    )

    aggregated = _trip_aggregates(interpolated_fixes, "interp_n_locs")
    uniform, errors = _split_heterogeneous(aggregated)

    joined = uniform.join(raw_counts, on=TRIP_KEY, how="left")
    missing = joined.filter(pl.col("raw_n_locs").is_null())
    errors.extend(
        MissingRawCountError(
            message="No raw fixes found for this interpolated trip",
            individual_id=individual_id,
            trip_id=trip_id,
        )
        for individual_id, trip_id in missing.select(TRIP_KEY).iter_rows()
    )

    trips = (
        joined.filter(pl.col("raw_n_locs").is_not_null())
        .select(
            *TRIP_KEY,
            "raw_n_locs",
            "interp_n_locs",
            "departure",
            "return_time",
            "duration",
            "max_dist_km",
            "complete",
        )
        .sort(TRIP_KEY)
    )
    return trips, errors


@step()
def build_trip_summaries(
    trip_fixes: pl.DataFrame,
    interpolated_fixes: pl.DataFrame | None = None,
    issues: pl.DataFrame | None = None,
) -> dict[str, pl.DataFrame]:
    """Summarize raw trips and, when present, interpolated trips.

    Args:
        trip_fixes: Classified fixes
        interpolated_fixes: Output of interpolate_trips, if that step ran
        issues: Issues collected by earlier steps

    Returns:
        Dict with trips, issues and (if interpolated_fixes was given)
        interpolated_trips
    """
    logger.info("Summarizing %s classified fixes...", f"{len(trip_fixes):,}")
    log = IssueLog("build_trip_summaries")

    trips, errors = summarize_trips(trip_fixes)
    for error in errors:
        log.record(error)
    result = {"trips": trips}
    logger.info("Summarized %d trips", len(trips))

    if interpolated_fixes is not None:
        interpolated_trips, errors = summarize_interpolated_trips(
            interpolated_fixes, trip_fixes
        )
        for error in errors:
            log.record(error)
        result["interpolated_trips"] = interpolated_trips
        logger.info("Summarized %d interpolated trips", len(interpolated_trips))

    if len(log):
        logger.warning("%d trip(s) excluded from summaries, see issues table", len(log))

    result["issues"] = append_issues(issues, log.to_frame())
    return result
