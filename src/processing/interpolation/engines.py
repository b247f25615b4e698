"""Interpolation engines.

An engine regularises tracks in time. Its whole contract is::

    engine(tracks, timestep) -> DataFrame

where ``tracks`` has columns track_id, timestamp, longitude, latitude (one
track per trip or trip section) and the result has the same columns at
regular ``timestep`` intervals. Movement-model engines (e.g. a continuous-time
correlated random walk) plug in through this contract; a straight-line
engine is bundled so the pipeline runs without one.
"""

import logging
from typing import Protocol

import polars as pl

logger = logging.getLogger(__name__)

TRACK_COLUMNS = ["track_id", "timestamp", "longitude", "latitude"]


class Interpolator(Protocol):
    """Regularise tracks to fixes every ``timestep``."""

    def __call__(self, tracks: pl.DataFrame, timestep: str) -> pl.DataFrame: ...


class LinearInterpolator:
    """Straight-line interpolation in time between observed fixes.

    Each track gets fixes at first_fix, first_fix + timestep, ... up to its
    last fix. Positions are interpolated linearly in longitude and latitude.
    """

    def __call__(self, tracks: pl.DataFrame, timestep: str) -> pl.DataFrame:
        if tracks.is_empty():
            return tracks.select(TRACK_COLUMNS)

        ts_dtype = tracks.schema["timestamp"]
        grid = (
            tracks.group_by("track_id", maintain_order=True)
            .agg(
                pl.datetime_range(
                    pl.col("timestamp").min(),
                    pl.col("timestamp").max(),
                    interval=timestep,
                ).alias("timestamp")
            )
            .explode("timestamp")
            .with_columns(pl.col("timestamp").cast(ts_dtype), pl.lit(False).alias("_observed"))
        )

        combined = (
            pl.concat(
                [
                    tracks.select(TRACK_COLUMNS)
                    .unique(["track_id", "timestamp"], keep="first", maintain_order=True)
                    .with_columns(pl.lit(True).alias("_observed")),
                    grid,
                ],
                how="diagonal",
            )
            .sort(["track_id", "timestamp", "_observed"], descending=[False, False, True])
            .with_columns(
                pl.col("longitude").interpolate_by("timestamp").over("track_id"),
                pl.col("latitude").interpolate_by("timestamp").over("track_id"),
            )
            # A grid point on the last observed fix has nothing to interpolate towards
            .with_columns(
                pl.col("longitude").forward_fill().over("track_id"),
                pl.col("latitude").forward_fill().over("track_id"),
            )
        )

        result = combined.filter(~pl.col("_observed")).select(TRACK_COLUMNS)
        logger.debug(
            "Interpolated %d tracks from %d to %d fixes",
            tracks["track_id"].n_unique(),
            len(tracks),
            len(result),
        )
        return result


INTERPOLATORS: dict[str, type] = {
    "linear": LinearInterpolator,
}
