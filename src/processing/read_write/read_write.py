"""Loads tracking tables from input paths and writes trip outputs."""

import logging
from pathlib import Path

import geopandas as gpd
import polars as pl

from pipeline.decoration import step
from track_canon.core.dataclass import CanonicalData

logger = logging.getLogger(__name__)

GEO_SUFFIXES = (".shp", ".shp.zip", ".geojson", ".gpkg")


def _check_path(table: str, path: str) -> None:
    """Raise with the deepest existing parent if path does not exist."""
    p = Path(path)
    if p.exists():
        return
    trace_path = p
    broke_at = p.name
    while not trace_path.exists() and trace_path != trace_path.parent:
        broke_at = trace_path.name
        trace_path = trace_path.parent
    msg = (
        f"Path for table {table} does not exist at {path}. "
        f"Possibly broken at: {broke_at} in {trace_path}?"
    )
    raise FileNotFoundError(msg)


def points_to_frame(gdf: gpd.GeoDataFrame) -> pl.DataFrame:
    """Flatten a point GeoDataFrame to longitude/latitude columns (WGS84)."""
    if gdf.crs is not None and not gdf.crs.equals("EPSG:4326"):
        gdf = gdf.to_crs("EPSG:4326")
    attributes = gdf.drop(columns=gdf.geometry.name)
    return pl.from_pandas(attributes).with_columns(
        pl.Series("longitude", gdf.geometry.x.to_numpy(), dtype=pl.Float64),
        pl.Series("latitude", gdf.geometry.y.to_numpy(), dtype=pl.Float64),
    )


def frame_to_points(df: pl.DataFrame) -> gpd.GeoDataFrame:
    """Build a WGS84 point GeoDataFrame from longitude/latitude columns."""
    return gpd.GeoDataFrame(
        df.to_pandas(),
        geometry=gpd.points_from_xy(df["longitude"].to_list(), df["latitude"].to_list()),
        crs="EPSG:4326",
    )


@step()
def load_data(
    input_paths: dict[str, str],
) -> dict[str, pl.DataFrame]:
    """Load tracking tables from input paths.

    csv and parquet files are read with Polars. Point layers (geojson,
    shapefile, geopackage) are read with GeoPandas and flattened to
    longitude/latitude columns.
    """
    data = {}

    for table, path in input_paths.items():
        logger.info("Loading %s...", table)
        _check_path(table, path)

        if path.endswith(".csv"):
            data[table] = pl.read_csv(path, try_parse_dates=True)
        elif path.endswith(".parquet"):
            data[table] = pl.read_parquet(path)
        elif path.endswith(GEO_SUFFIXES):
            data[table] = points_to_frame(gpd.read_file(path))
        else:
            msg = f"Unsupported file format for table {table}: {path}"
            raise ValueError(msg)

        logger.info("  %s rows", f"{len(data[table]):,}")

    logger.info("All data loaded successfully.")
    return data


@step()
def write_data(
    output_paths: dict[str, str],
    canonical_data: CanonicalData,
    validate_input: bool = False,
    create_dirs: bool = True,
) -> None:
    """Write canonical tables to output paths.

    Tables with longitude/latitude columns can be written as point layers
    (geojson, shapefile, geopackage) through GeoPandas.
    """
    for table in output_paths:
        if getattr(canonical_data, table, None) is None:
            msg = f"Table '{table}' has not been produced by any step"
            raise ValueError(msg)
        if validate_input:
            logger.info("Validating %s...", table)
            canonical_data.validate(table)

    for table, path in output_paths.items():
        logger.info("Writing %s to:\n%s...", table, path)

        df = getattr(canonical_data, table)
        file_path = Path(path)

        if create_dirs:
            file_path.parent.mkdir(parents=True, exist_ok=True)

        if path.endswith(".csv"):
            df.write_csv(path)
        elif path.endswith(".parquet"):
            df.write_parquet(path)
        elif path.endswith(GEO_SUFFIXES):
            frame_to_points(df).to_file(path)
        else:
            msg = f"Unsupported file format for table {table}: {path}"
            raise ValueError(msg)

    logger.info("All data written successfully.")
