"""Interpolate classified trips through an injected interpolation engine.

The adapter selects trips by type, keys them as engine tracks (one per trip,
or one per trip section when gaps are not interpolated), calls the engine and
maps its output back to (individual_id, trip_id[, trip_section]). Distance
from origin is recomputed on the interpolated positions and the trip type is
carried over so the result can be summarized like raw trip fixes.
"""

import logging
from typing import Literal

import polars as pl

from pipeline.decoration import step
from track_canon.codebook.trips import NON_TRIP_ID

from ..origins.resolver import OriginResolver, build_origin_resolver
from ..trips.classification import MIN_TRIP_FIXES
from ..trips.segmentation import add_origin_distance
from .engines import INTERPOLATORS, Interpolator
from .interpolation_configs import InterpolationConfig

logger = logging.getLogger(__name__)

TRIP_KEY = ["individual_id", "trip_id"]


def select_tracks(
    trip_fixes: pl.DataFrame,
    config: InterpolationConfig,
) -> tuple[pl.DataFrame, pl.DataFrame]:
    """Select fixes to interpolate and number them as engine tracks.

    Returns:
        Tuple of (tracks with track_id, timestamp, longitude, latitude;
        lookup from track_id back to individual_id, trip_id, trip_section)
    """
    keys = TRIP_KEY if config.interpolate_gaps else [*TRIP_KEY, "trip_section"]

    selected = trip_fixes.filter(
        (pl.col("trip_id") != NON_TRIP_ID) & pl.col("trip_type").is_in(config.trip_types)
    )

    if not config.interpolate_gaps:
        n_before = selected.select(pl.struct(keys).n_unique()).item()
        selected = selected.filter(pl.len().over(keys) >= MIN_TRIP_FIXES)
        n_dropped = n_before - selected.select(pl.struct(keys).n_unique()).item()
        if n_dropped:
            logger.info(
                "Dropped %d trip section(s) with fewer than %d fixes",
                n_dropped,
                MIN_TRIP_FIXES,
            )

    lookup = (
        selected.select(keys)
        .unique()
        .sort(keys)
        .with_row_index("track_id", offset=1)
        .with_columns(pl.col("track_id").cast(pl.Int64))
    )
    selected = selected.join(lookup, on=keys, how="left", maintain_order="left")
    if config.interpolate_gaps:
        lookup = lookup.with_columns(pl.lit(None, dtype=pl.Int64).alias("trip_section"))

    tracks = selected.select("track_id", "timestamp", "longitude", "latitude")
    return tracks, lookup


def interpolate_tracks(
    trip_fixes: pl.DataFrame,
    resolver: OriginResolver,
    interpolator: Interpolator,
    config: InterpolationConfig,
    lonlat: bool = True,
) -> pl.DataFrame:
    """Interpolate selected trips and restore trip identity.

    Args:
        trip_fixes: Classified fixes (output of get_trips)
        resolver: Origin resolver used to recompute origin_distance
        interpolator: Engine implementing the Interpolator contract
        config: Interpolation parameters
        lonlat: Whether coordinates are longitude/latitude degrees

    Returns:
        Interpolated fixes with individual_id, trip_id, trip_section,
        timestamp, longitude, latitude, origin_distance and trip_type
    """
    tracks, lookup = select_tracks(trip_fixes, config)
    logger.info(
        "Interpolating %d track(s) (%s fixes) every %s",
        len(lookup),
        f"{len(tracks):,}",
        config.timestep,
    )

    interpolated = interpolator(tracks, config.timestep)

    trip_types = trip_fixes.select(*TRIP_KEY, "trip_type").unique(TRIP_KEY)
    restored = (
        interpolated.join(lookup, on="track_id", how="inner")
        .join(trip_types, on=TRIP_KEY, how="left")
        .select(*TRIP_KEY, "trip_section", "timestamp", "longitude", "latitude", "trip_type")
        .sort([*TRIP_KEY, "timestamp"])
    )

    with_distance = add_origin_distance(restored, resolver, lonlat=lonlat)
    return with_distance.select(
        *TRIP_KEY,
        "trip_section",
        "timestamp",
        "longitude",
        "latitude",
        "origin_distance",
        "trip_type",
    )


@step()
def interpolate_trips(
    trip_fixes: pl.DataFrame,
    origins: pl.DataFrame,
    trip_types: list[str] | None = None,
    timestep: str = "10m",
    interpolate_gaps: bool = True,
    method: Literal["linear"] = "linear",
    lonlat: bool = True,
    multi_origin: bool | None = None,
    interpolator: Interpolator | None = None,
) -> dict[str, pl.DataFrame]:
    """Interpolate classified trips to regular time steps.

    Args:
        trip_fixes: Classified fixes
        origins: Origins used during trip extraction
        trip_types: Trip type labels to interpolate (default Complete and
            Incomplete)
        timestep: Polars duration string between interpolated fixes
        interpolate_gaps: Interpolate whole trips (True) or each section
        method: Bundled engine used when interpolator is None
        lonlat: Whether coordinates are longitude/latitude degrees
        multi_origin: Passed to the origin resolver
        interpolator: Injected engine (e.g. a movement-model fit)

    Returns:
        Dict with interpolated_fixes
    """
    config_kwargs = {
        "timestep": timestep,
        "interpolate_gaps": interpolate_gaps,
        "method": method,
    }
    if trip_types is not None:
        config_kwargs["trip_types"] = trip_types
    config = InterpolationConfig(**config_kwargs)

    engine = interpolator or INTERPOLATORS[config.method]()
    resolver = build_origin_resolver(
        origins.with_columns(pl.col("individual_id").cast(pl.Utf8)),
        multi_origin=multi_origin,
    )

    interpolated_fixes = interpolate_tracks(
        trip_fixes, resolver, engine, config, lonlat=lonlat
    )

    msg = (
        f"Interpolation complete: {len(interpolated_fixes):,} fixes across "
        f"{interpolated_fixes.select(pl.struct(TRIP_KEY).n_unique()).item()} trips."
    )
    logger.info(msg)

    return {"interpolated_fixes": interpolated_fixes}
