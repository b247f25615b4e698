"""Gap detection and trip type classification.

Per (individual_id, trip_id), ordered by time:

1. diff_time: hours since the previous fix of the group (0 for the first)
2. diff_dist: metres from the previous fix of the group (null for the first)
3. gap: diff_time > gap_time AND diff_dist > gap_dist
4. trip_section: 1 + number of gaps so far in the group
5. trip_type: first matching rule of TRIP_TYPE_RULES

No fix is ever dropped. The derived columns are removed before being
recomputed, so classifying an already classified frame gives the same result.
"""

import logging
from collections.abc import Callable

import polars as pl

from track_canon.codebook.trips import NON_TRIP_ID, TripType
from utils.helpers import expr_distance

from .segmentation import expr_elapsed_hours

logger = logging.getLogger(__name__)

TRIP_KEY = ["individual_id", "trip_id"]
DERIVED_COLUMNS = ["diff_time", "diff_dist", "gap", "trip_section", "trip_type"]

# Trips with fewer fixes than this cannot be classified
MIN_TRIP_FIXES = 3

# A rule builds a boolean predicate from the return buffer (metres)
TripTypeRule = tuple[Callable[[float], pl.Expr], TripType]

TRIP_TYPE_RULES: tuple[TripTypeRule, ...] = (
    (lambda _: pl.col("trip_id") == NON_TRIP_ID, TripType.NON_TRIP),
    (lambda _: pl.col("_n_fixes") < MIN_TRIP_FIXES, TripType.NON_TRIP),
    (lambda _: pl.col("_any_gap"), TripType.GAPPY),
    (
        lambda return_buffer: (pl.col("_first_dist") > return_buffer)
        | (pl.col("_last_dist") > return_buffer),
        TripType.INCOMPLETE,
    ),
    (lambda _: pl.lit(True), TripType.COMPLETE),
)


def detect_gaps(
    trip_fixes: pl.DataFrame,
    gap_time: float,
    gap_dist: float,
    lonlat: bool = True,
) -> pl.DataFrame:
    """Add diff_time, diff_dist, gap and trip_section columns."""
    ordered = trip_fixes.drop(
        [c for c in DERIVED_COLUMNS if c in trip_fixes.columns]
    ).sort(["individual_id", "timestamp"], maintain_order=True)

    with_diffs = ordered.with_columns(
        expr_elapsed_hours().fill_null(0.0).over(TRIP_KEY).alias("diff_time"),
        expr_distance(
            pl.col("latitude").shift(1),
            pl.col("longitude").shift(1),
            pl.col("latitude"),
            pl.col("longitude"),
            lonlat=lonlat,
        )
        .over(TRIP_KEY)
        .alias("diff_dist"),
    ).with_columns(
        ((pl.col("diff_time") > gap_time) & (pl.col("diff_dist") > gap_dist))
        .fill_null(False)
        .alias("gap")
    )

    result = with_diffs.with_columns(
        (1 + pl.col("gap").cast(pl.Int64).cum_sum().over(TRIP_KEY)).alias("trip_section")
    )

    n_gaps = result["gap"].sum()
    if n_gaps:
        logger.debug("Flagged %d gap(s) (> %.1f h and > %.0f m)", n_gaps, gap_time, gap_dist)
    return result


def trip_type_expr(
    return_buffer: float,
    rules: tuple[TripTypeRule, ...] = TRIP_TYPE_RULES,
) -> pl.Expr:
    """Chain rules into one when/then expression; the first match wins."""
    (first_pred, first_type), *rest = rules
    expr = pl.when(first_pred(return_buffer)).then(pl.lit(first_type.label))
    for predicate, trip_type in rest:
        expr = expr.when(predicate(return_buffer)).then(pl.lit(trip_type.label))
    return expr.otherwise(pl.lit(None, dtype=pl.Utf8))


def classify_trips(
    trip_fixes: pl.DataFrame,
    return_buffer: float,
    rules: tuple[TripTypeRule, ...] = TRIP_TYPE_RULES,
) -> pl.DataFrame:
    """Add a trip_type column, constant within each (individual, trip).

    Expects the gap columns from detect_gaps and rows sorted by time within
    each trip.
    """
    metrics = [
        pl.len().over(TRIP_KEY).alias("_n_fixes"),
        pl.col("gap").any().over(TRIP_KEY).alias("_any_gap"),
        pl.col("origin_distance").first().over(TRIP_KEY).alias("_first_dist"),
        pl.col("origin_distance").last().over(TRIP_KEY).alias("_last_dist"),
    ]
    classified = (
        trip_fixes.drop("trip_type", strict=False)
        .with_columns(metrics)
        .with_columns(trip_type_expr(return_buffer, rules).alias("trip_type"))
        .drop("_n_fixes", "_any_gap", "_first_dist", "_last_dist")
    )

    counts = (
        classified.filter(pl.col("trip_id") != NON_TRIP_ID)
        .unique(TRIP_KEY)
        .group_by("trip_type")
        .len()
        .sort("trip_type")
    )
    for trip_type, n in counts.iter_rows():
        logger.debug("  %s: %d trip(s)", trip_type, n)

    return classified


def classify(
    trip_fixes: pl.DataFrame,
    gap_time: float,
    gap_dist: float,
    return_buffer: float,
    lonlat: bool = True,
) -> pl.DataFrame:
    """Detect gaps then classify trips."""
    return classify_trips(
        detect_gaps(trip_fixes, gap_time, gap_dist, lonlat=lonlat),
        return_buffer,
    )
