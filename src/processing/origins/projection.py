"""Projection of fixes and origins into a colony-centred planar CRS.

Trip processing only needs one capability from this module:
``project(points, target_crs) -> points``. It is injected into the trip
extraction step as a plain callable so that tests can substitute a fake and
the core never imports pyproj itself.
"""

import logging
from collections.abc import Sequence
from functools import lru_cache
from typing import Protocol

import polars as pl
from pyproj import Transformer

from utils.helpers import Point

logger = logging.getLogger(__name__)

WGS84 = "EPSG:4326"


class Projector(Protocol):
    """Callable that re-projects (x, y) points into target_crs."""

    def __call__(self, points: Sequence[Point], target_crs: str) -> list[Point]: ...


def origin_crs(origins: pl.DataFrame) -> str:
    """Lambert azimuthal equal-area CRS centred on the mean origin.

    Distances from the centre are preserved well enough for buffers of a
    few hundred kilometres, which covers foraging ranges from one colony.
    """
    lon_0, lat_0 = origins.select(
        pl.col("longitude").mean(), pl.col("latitude").mean()
    ).row(0)
    return f"+proj=laea +lat_0={lat_0} +lon_0={lon_0} +x_0=0 +y_0=0 +units=m +datum=WGS84"


@lru_cache(maxsize=8)
def _transformer(source_crs: str, target_crs: str) -> Transformer:
    return Transformer.from_crs(source_crs, target_crs, always_xy=True)


def project(
    points: Sequence[Point],
    target_crs: str,
    source_crs: str = WGS84,
) -> list[Point]:
    """Re-project (longitude, latitude) points with pyproj.

    Args:
        points: (x, y) pairs in source_crs axis order (lon/lat for WGS84)
        target_crs: Any CRS string pyproj understands
        source_crs: CRS of the input points

    Returns:
        List of (x, y) pairs in target_crs, same length and order as points
    """
    if not points:
        return []
    xs = [float(x) for x, _ in points]
    ys = [float(y) for _, y in points]
    out_x, out_y = _transformer(source_crs, target_crs).transform(xs, ys)
    return [(float(x), float(y)) for x, y in zip(out_x, out_y, strict=True)]


def project_columns(
    df: pl.DataFrame,
    projector: Projector,
    target_crs: str,
    x_col: str = "longitude",
    y_col: str = "latitude",
) -> pl.DataFrame:
    """Replace a coordinate column pair with its projected values."""
    projected = projector(list(df.select(x_col, y_col).iter_rows()), target_crs)
    return df.with_columns(
        pl.Series(x_col, [p[0] for p in projected], dtype=pl.Float64),
        pl.Series(y_col, [p[1] for p in projected], dtype=pl.Float64),
    )
