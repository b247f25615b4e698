"""Trip extraction step for central-place foraging tracks.

Algorithm Overview:
-------------------
Each individual is processed independently:
1. Origin Resolution
    - A single distinct origin across the dataset is shared by every
      individual; otherwise each individual resolves to its own origin
      (nest). Individuals that cannot be resolved are skipped and reported.
      Individuals prepare_tracks found with conflicting origins count as
      extra distinct origins and are skipped without a second report.
2. Distance From Origin
    - Haversine metres for longitude/latitude, Euclidean metres for
      projected coordinates. With ``crs`` set, fixes and origins are
      projected first; output fixes keep their input coordinates.
3. Trip Segmentation
    - Fixes within inner_buffer of the origin are non-trip fixes
      (trip_id = -1). Maximal runs of fixes outside the buffer become trips
      1, 2, ... per individual. Runs never cross a tracking session boundary
      (consecutive fixes more than gap_limit days apart).
4. Gap Detection and Classification
    - Gaps split trips into sections. Each trip gets one trip type:
      Non-trip, Gappy, Incomplete or Complete.

Per-individual failures are collected in the issues table rather than
aborting the run. Individuals can be processed on a thread pool; output is
always sorted by (individual_id, timestamp).
"""

import logging
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed

import polars as pl

from pipeline.decoration import step
from track_canon.codebook.trips import NON_TRIP_ID
from track_canon.core.exceptions import (
    InsufficientDataError,
    TripProcessingError,
    UnresolvedOriginError,
)
from track_canon.core.issues import IssueLog, append_issues
from track_canon.validation.column import check_required_columns

from ..origins.projection import Projector, origin_crs, project, project_columns
from ..origins.resolver import OriginResolver, build_origin_resolver
from .classification import classify
from .segmentation import add_origin_distance, assign_trip_ids
from .trip_configs import TripConfig

logger = logging.getLogger(__name__)

PROGRESS_EVERY = 100


def process_individual(
    fixes: pl.DataFrame,
    resolver: OriginResolver,
    config: TripConfig,
) -> pl.DataFrame:
    """Segment and classify the fixes of one individual.

    Raises:
        UnresolvedOriginError: If the individual has no usable origin
    """
    lonlat = not config.planar
    with_distance = add_origin_distance(fixes, resolver, lonlat=lonlat)
    segmented = assign_trip_ids(
        with_distance,
        inner_buffer=config.inner_buffer,
        gap_limit=config.gap_limit,
        min_duration=config.min_duration,
    )
    return classify(
        segmented,
        gap_time=config.gap_time,
        gap_dist=config.gap_dist,
        return_buffer=config.return_buffer,
        lonlat=lonlat,
    )


def _process_or_error(
    fixes: pl.DataFrame,
    resolver: OriginResolver,
    config: TripConfig,
) -> pl.DataFrame | TripProcessingError:
    try:
        return process_individual(fixes, resolver, config)
    except TripProcessingError as e:
        return e


def _empty_trip_fixes(fixes: pl.DataFrame) -> pl.DataFrame:
    return fixes.clear().with_columns(
        pl.lit(None, dtype=pl.Float64).alias("origin_distance"),
        pl.lit(None, dtype=pl.Int64).alias("trip_id"),
        pl.lit(None, dtype=pl.Float64).alias("diff_time"),
        pl.lit(None, dtype=pl.Float64).alias("diff_dist"),
        pl.lit(None, dtype=pl.Boolean).alias("gap"),
        pl.lit(None, dtype=pl.Int64).alias("trip_section"),
        pl.lit(None, dtype=pl.Utf8).alias("trip_type"),
    )


def unresolved_origin_ids(issues: pl.DataFrame | None) -> list[str]:
    """Individuals an earlier step already reported as UnresolvedOriginError."""
    if issues is None or issues.is_empty():
        return []
    return (
        issues.filter(
            (pl.col("error") == UnresolvedOriginError.__name__)
            & pl.col("individual_id").is_not_null()
        )["individual_id"]
        .unique(maintain_order=True)
        .to_list()
    )


def extract_trips(
    fixes: pl.DataFrame,
    origins: pl.DataFrame,
    config: TripConfig,
    projector: Projector = project,
    unresolved_ids: Iterable[str] = (),
) -> tuple[pl.DataFrame, IssueLog]:
    """Segment and classify trips for every individual.

    Args:
        fixes: Fixes with individual_id, timestamp, longitude, latitude
        origins: Origins with individual_id, longitude, latitude
        config: Trip extraction parameters
        projector: Projection capability used when config.crs is set
        unresolved_ids: Individuals with conflicting origins that were left
            out of origins and already reported. They count towards the
            number of distinct origins and their fixes are skipped.

    Returns:
        Tuple of (classified fixes sorted by individual and time, issue log)

    Raises:
        DataValidationError: If fixes or origins lack required columns
        ValueError: If origins is empty
    """
    check_required_columns("fixes", fixes, ["individual_id", "timestamp", "longitude", "latitude"])
    check_required_columns("origins", origins, ["individual_id", "longitude", "latitude"])

    log = IssueLog("get_trips")
    fixes = fixes.with_columns(pl.col("individual_id").cast(pl.Utf8))
    origins = origins.with_columns(pl.col("individual_id").cast(pl.Utf8))

    if config.crs is not None:
        target_crs = origin_crs(origins) if config.crs == "auto" else config.crs
        logger.info("Projecting fixes and origins to %s", target_crs)
        fixes = project_columns(
            fixes.with_columns(
                pl.col("longitude").alias("_input_longitude"),
                pl.col("latitude").alias("_input_latitude"),
            ),
            projector,
            target_crs,
        )
        origins = project_columns(origins, projector, target_crs)

    unresolved_ids = sorted({str(i) for i in unresolved_ids})
    resolver = build_origin_resolver(
        origins, multi_origin=config.multi_origin, ambiguous_ids=unresolved_ids
    )
    if unresolved_ids:
        skipped = fixes.filter(pl.col("individual_id").is_in(unresolved_ids))
        logger.info(
            "Skipping %s fixes of %d individual(s) with unresolved origins",
            f"{len(skipped):,}",
            skipped["individual_id"].n_unique(),
        )
        fixes = fixes.filter(~pl.col("individual_id").is_in(unresolved_ids))

    fix_ids = set(fixes["individual_id"].unique().to_list())
    for individual_id in sorted(set(origins["individual_id"].to_list()) - fix_ids):
        log.record(
            InsufficientDataError(
                message="No fixes recorded for this individual",
                individual_id=individual_id,
            )
        )

    groups = fixes.sort(["individual_id", "timestamp"], maintain_order=True).partition_by(
        "individual_id", maintain_order=True, as_dict=False
    )
    logger.info("Processing %d individuals...", len(groups))

    results: list[pl.DataFrame | TripProcessingError | None] = [None] * len(groups)
    if config.max_workers > 1 and len(groups) > 1:
        with ThreadPoolExecutor(max_workers=config.max_workers) as executor:
            future_map = {
                executor.submit(_process_or_error, group, resolver, config): i
                for i, group in enumerate(groups)
            }
            for future in as_completed(future_map):
                results[future_map[future]] = future.result()
    else:
        for i, group in enumerate(groups):
            if i % PROGRESS_EVERY == 0 and i > 0:
                logger.info(
                    "Trip extraction progress: %d%% -- %d of %d individuals processed",
                    round(i / len(groups) * 100),
                    i,
                    len(groups),
                )
            results[i] = _process_or_error(group, resolver, config)

    kept = []
    for result in results:
        if isinstance(result, TripProcessingError):
            log.record(result)
        elif result is not None:
            kept.append(result)

    if not kept:
        logger.warning("No individual could be processed")
        trip_fixes = _empty_trip_fixes(fixes)
    else:
        trip_fixes = pl.concat(kept, how="vertical_relaxed").sort(
            ["individual_id", "timestamp"], maintain_order=True
        )

    if "_input_longitude" in trip_fixes.columns:
        trip_fixes = trip_fixes.with_columns(
            pl.col("_input_longitude").alias("longitude"),
            pl.col("_input_latitude").alias("latitude"),
        ).drop("_input_longitude", "_input_latitude")

    return trip_fixes, log


@step()
def get_trips(
    fixes: pl.DataFrame,
    origins: pl.DataFrame,
    issues: pl.DataFrame | None = None,
    inner_buffer: float = 1000.0,
    return_buffer: float = 10000.0,
    gap_time: float = 12.0,
    gap_dist: float = 5000.0,
    gap_limit: float | None = 100.0,
    min_duration: float = 0.0,
    lonlat: bool = True,
    crs: str | None = None,
    multi_origin: bool | None = None,
    max_workers: int = 1,
    projector: Projector | None = None,
) -> dict[str, pl.DataFrame]:
    """Extract and classify trips from prepared fixes.

    Args:
        fixes: Prepared fixes (see prepare_tracks)
        origins: One origin per individual, or a single shared colony
        issues: Issues collected by earlier steps. Individuals reported
            there as UnresolvedOriginError are skipped.
        inner_buffer: Metres from the origin counted as at the origin
        return_buffer: Metres from the origin a trip must start and end within
            to be Complete
        gap_time: Hours between fixes that can flag a gap
        gap_dist: Metres between fixes that can flag a gap
        gap_limit: Days between fixes that start a new tracking session
        min_duration: Minimum trip duration in hours
        lonlat: Whether coordinates are longitude/latitude degrees
        crs: Target CRS for projection, "auto" for a colony-centred one
        multi_origin: Force per-individual (True) or shared (False) origins
        max_workers: Threads used to process individuals
        projector: Replacement projection callable (defaults to pyproj)

    Returns:
        Dict with keys:
        - trip_fixes: Fixes with origin_distance, trip_id, trip_section,
          diff_time, diff_dist, gap and trip_type
        - issues: Earlier issues plus failures from this step
    """
    logger.info("Extracting trips from %s fixes...", f"{len(fixes):,}")

    config = TripConfig(
        inner_buffer=inner_buffer,
        return_buffer=return_buffer,
        gap_time=gap_time,
        gap_dist=gap_dist,
        gap_limit=gap_limit,
        min_duration=min_duration,
        lonlat=lonlat,
        crs=crs,
        multi_origin=multi_origin,
        max_workers=max_workers,
    )

    trip_fixes, log = extract_trips(
        fixes,
        origins,
        config,
        projector=projector or project,
        unresolved_ids=unresolved_origin_ids(issues),
    )

    n_trips = trip_fixes.filter(pl.col("trip_id") != NON_TRIP_ID).select(
        pl.struct("individual_id", "trip_id").n_unique()
    ).item()
    msg = (
        f"Trip extraction complete: {len(trip_fixes):,} fixes, {n_trips} trips, "
        f"{len(log)} issue(s)."
    )
    logger.info(msg)

    return {
        "trip_fixes": trip_fixes,
        "issues": append_issues(issues, log.to_frame()),
    }
