"""Split the raw fix stream into canonical fixes and origins tables."""

import logging

import polars as pl

from pipeline.decoration import step
from track_canon.core.exceptions import DataValidationError, UnresolvedOriginError
from track_canon.core.issues import IssueLog, append_issues
from track_canon.validation.column import check_required_columns
from utils.helpers import parse_timestamps

logger = logging.getLogger(__name__)

FIX_COLUMNS = ["individual_id", "timestamp", "longitude", "latitude"]
ORIGIN_COLUMNS = ["origin_longitude", "origin_latitude"]


def split_origins(fixes: pl.DataFrame) -> tuple[pl.DataFrame, pl.DataFrame]:
    """Pull distinct origin points out of fix rows.

    Returns:
        Tuple of (origin rows, one per distinct individual/point pair;
        individual ids whose rows disagree on the origin point)
    """
    candidates = (
        fixes.select("individual_id", *ORIGIN_COLUMNS)
        .drop_nulls(ORIGIN_COLUMNS)
        .unique(maintain_order=True)
        .rename({"origin_longitude": "longitude", "origin_latitude": "latitude"})
    )
    conflicting = (
        candidates.group_by("individual_id", maintain_order=True)
        .len()
        .filter(pl.col("len") > 1)
        .select("individual_id")
    )
    return candidates, conflicting


@step()
def prepare_tracks(
    fixes: pl.DataFrame,
    origins: pl.DataFrame | None = None,
    datetime_format: str | None = None,
    issues: pl.DataFrame | None = None,
) -> dict[str, pl.DataFrame]:
    """Normalise raw fixes and derive the origins table.

    Origins come from the origin_longitude/origin_latitude columns of the fix
    stream unless an origins table was loaded separately. Individuals whose
    rows disagree on the origin are reported as UnresolvedOriginError and
    left out of the origins table.

    Args:
        fixes: Raw fix stream
        origins: Optional pre-built origins table
        datetime_format: strftime format for string timestamps (None infers)
        issues: Issues collected by earlier steps

    Returns:
        Dict with fixes, origins and issues

    Raises:
        DataValidationError: If required columns are missing or any fix has
            null coordinates
    """
    logger.info("Preparing %s raw fixes...", f"{len(fixes):,}")
    check_required_columns("fixes", fixes, FIX_COLUMNS)

    missing_coords = fixes.filter(
        pl.col("longitude").is_null() | pl.col("latitude").is_null()
    )
    if len(missing_coords) > 0:
        raise DataValidationError(
            table="fixes",
            rule="missing_coordinates",
            message=(
                f"{len(missing_coords)} fixes have null coordinates. "
                "Filter them out before trip extraction."
            ),
        )

    prepared = parse_timestamps(fixes, "timestamp", datetime_format).with_columns(
        pl.col("individual_id").cast(pl.Utf8),
        pl.col("longitude").cast(pl.Float64),
        pl.col("latitude").cast(pl.Float64),
    )

    log = IssueLog("prepare_tracks")
    if origins is None:
        check_required_columns("fixes", prepared, ORIGIN_COLUMNS)
        origins, conflicting = split_origins(prepared)
        for individual_id in conflicting["individual_id"].to_list():
            log.record(
                UnresolvedOriginError(
                    message="Fix rows disagree on the origin point",
                    individual_id=individual_id,
                )
            )
        origins = origins.join(conflicting, on="individual_id", how="anti")
    else:
        check_required_columns("origins", origins, ["individual_id", "longitude", "latitude"])
        origins = origins.with_columns(pl.col("individual_id").cast(pl.Utf8))

    prepared = prepared.drop([c for c in ORIGIN_COLUMNS if c in prepared.columns])
    prepared = prepared.sort(["individual_id", "timestamp"], maintain_order=True)

    logger.info(
        "Prepared %s fixes for %d individuals and %d origins",
        f"{len(prepared):,}",
        prepared["individual_id"].n_unique(),
        len(origins),
    )

    return {
        "fixes": prepared,
        "origins": origins.sort("individual_id"),
        "issues": append_issues(issues, log.to_frame()),
    }
