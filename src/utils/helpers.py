"""Distance and timestamp helpers shared by the trip processing steps.

Distances are always metres. Geographic coordinates (longitude/latitude in
decimal degrees) use the haversine great-circle distance; projected
coordinates (x/y in metres) use planar Euclidean distance. Callers choose the
mode with ``lonlat``; nothing here tries to guess it from the values.
"""

import logging
from collections.abc import Sequence

import polars as pl

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6371000.0

Point = tuple[float, float]


def expr_haversine(
    lat1: pl.Expr,
    lon1: pl.Expr,
    lat2: pl.Expr,
    lon2: pl.Expr,
    units: str = "meters",
) -> pl.Expr:
    """Return a Polars expression for Haversine distance.

    Returns null if any coordinate is null (e.g. the first fix of a track
    compared against a shifted predecessor).
    """
    all_coords_valid = (
        lat1.is_not_null() & lon1.is_not_null() & lat2.is_not_null() & lon2.is_not_null()
    )

    # Fill nulls with dummy values to prevent trigonometry errors
    # (result will be masked out by all_coords_valid check)
    lat1_safe = lat1.fill_null(0.0).radians()
    lon1_safe = lon1.fill_null(0.0).radians()
    lat2_safe = lat2.fill_null(0.0).radians()
    lon2_safe = lon2.fill_null(0.0).radians()

    dlat = lat2_safe - lat1_safe
    dlon = lon2_safe - lon1_safe
    a = (dlat / 2).sin().pow(2) + lat1_safe.cos() * lat2_safe.cos() * (dlon / 2).sin().pow(2)

    # Clip guards arcsin against a > 1 from floating point error on antipodes
    distance = 2 * EARTH_RADIUS_M * a.sqrt().clip(upper_bound=1.0).arcsin()

    if units in ["kilometers", "km"]:
        distance = distance / 1000.0

    return pl.when(all_coords_valid).then(distance).otherwise(None)


def expr_euclidean(
    y1: pl.Expr,
    x1: pl.Expr,
    y2: pl.Expr,
    x2: pl.Expr,
) -> pl.Expr:
    """Return a Polars expression for planar distance between projected points.

    Argument order mirrors expr_haversine (northing before easting). Nulls
    propagate.
    """
    return ((x2 - x1).pow(2) + (y2 - y1).pow(2)).sqrt()


def expr_distance(
    lat1: pl.Expr,
    lon1: pl.Expr,
    lat2: pl.Expr,
    lon2: pl.Expr,
    lonlat: bool = True,
) -> pl.Expr:
    """Distance in metres, great-circle if lonlat else planar."""
    if lonlat:
        return expr_haversine(lat1, lon1, lat2, lon2)
    return expr_euclidean(lat1, lon1, lat2, lon2)


def _points_frame(points: Sequence[Point]) -> pl.DataFrame:
    return pl.DataFrame(
        [(float(lon), float(lat)) for lon, lat in points],
        schema={"lon": pl.Float64, "lat": pl.Float64},
        orient="row",
    )


def pairwise_consecutive_distance(
    points: Sequence[Point],
    lonlat: bool = True,
) -> list[float | None]:
    """Distance between each point and the one before it.

    Args:
        points: Ordered (longitude, latitude) or (x, y) pairs
        lonlat: True for geographic coordinates, False for projected

    Returns:
        List the same length as points. Element 0 is None (no predecessor);
        with fewer than two points every element is None.
    """
    df = _points_frame(points)
    return df.select(
        expr_distance(
            pl.col("lat").shift(1),
            pl.col("lon").shift(1),
            pl.col("lat"),
            pl.col("lon"),
            lonlat=lonlat,
        ).alias("dist")
    )["dist"].to_list()


def distance_to_point(
    points: Sequence[Point],
    reference_point: Point,
    lonlat: bool = True,
) -> list[float]:
    """Distance from every point to a fixed reference point (e.g. a colony)."""
    ref_lon, ref_lat = reference_point
    df = _points_frame(points)
    return df.select(
        expr_distance(
            pl.lit(float(ref_lat)),
            pl.lit(float(ref_lon)),
            pl.col("lat"),
            pl.col("lon"),
            lonlat=lonlat,
        ).alias("dist")
    )["dist"].to_list()


def parse_timestamps(
    df: pl.DataFrame,
    column: str = "timestamp",
    datetime_format: str | None = None,
) -> pl.DataFrame:
    """Parse a string timestamp column to Datetime; leave Datetime untouched.

    Date-only columns are widened to midnight. Unparseable values raise,
    since the acquisition stage guarantees parseable instants.
    """
    dtype = df.schema[column]
    if dtype == pl.Utf8:
        logger.info("Parsing %s from string...", column)
        return df.with_columns(
            pl.col(column).str.to_datetime(format=datetime_format, strict=True)
        )
    if dtype == pl.Date:
        return df.with_columns(pl.col(column).cast(pl.Datetime("us")))
    return df
