"""Loading occurrence, background and environmental data."""

import logging
from pathlib import Path
from typing import List, Optional, Union

import elapid as ela
import geopandas as gpd
import pandas as pd
import rioxarray as rxr
import xarray as xr
from pandas.api.types import is_numeric_dtype

logger = logging.getLogger(__name__)

# Columns added by the partitioning and modelling code, never predictors
RESERVED_COLUMNS = ("geometry", "class", "grp", "sample_weight")


def load_points(
    points_path: Union[str, Path],
    x_col: str = "longitude",
    y_col: str = "latitude",
    crs: str = "EPSG:4326",
) -> gpd.GeoDataFrame:
    """Load occurrence or background points.

    CSV files are read with pandas and converted to points using `x_col` and
    `y_col`. Parquet files are read with geopandas; anything else goes through
    `gpd.read_file`.

    Args:
        points_path: Path to the points file
        x_col: Name of the x (longitude) column in CSV files
        y_col: Name of the y (latitude) column in CSV files
        crs: CRS assigned to CSV coordinates

    Returns:
        GeoDataFrame of points
    """
    points_path = Path(points_path)
    if not points_path.exists():
        raise FileNotFoundError(f"Points file not found at {points_path}")

    try:
        suffix = points_path.suffix.lower()
        if suffix == ".csv":
            df = pd.read_csv(points_path)
            missing = [c for c in (x_col, y_col) if c not in df.columns]
            if missing:
                raise ValueError(f"Coordinate columns {missing} not found in {points_path}")
            gdf = gpd.GeoDataFrame(
                df.drop(columns=[x_col, y_col]),
                geometry=gpd.points_from_xy(df[x_col], df[y_col]),
                crs=crs,
            )
        elif suffix == ".parquet":
            gdf = gpd.read_parquet(points_path)
        else:
            gdf = gpd.read_file(points_path)
        logger.info(f"Loaded {len(gdf)} points from {points_path}")
        return gdf
    except Exception as e:
        logger.error(f"Error loading points from {points_path}: {e}")
        raise


def load_environmental_variables(raster_path: Union[str, Path]) -> xr.DataArray:
    """Open a multi-band environmental raster with rioxarray."""
    raster_path = Path(raster_path)
    if not raster_path.exists():
        raise FileNotFoundError(f"Environmental raster not found at {raster_path}")
    envs = rxr.open_rasterio(raster_path, masked=True)
    logger.info(f"Loaded environmental raster with {envs.sizes.get('band', 1)} bands from {raster_path}")
    return envs  # type: ignore


def raster_band_names(envs: Union[xr.DataArray, xr.Dataset]) -> List[str]:
    """Names of the predictor variables held in a raster object."""
    if isinstance(envs, xr.Dataset):
        return [str(v) for v in envs.data_vars]
    long_name = envs.attrs.get("long_name")
    if isinstance(long_name, (list, tuple)):
        return [str(n) for n in long_name]
    if isinstance(long_name, str) and envs.sizes.get("band", 1) == 1:
        return [long_name]
    if "band" in envs.coords:
        return [f"band_{int(b)}" for b in envs["band"].values]
    return [str(envs.name or "band_1")]


def annotate_points(
    points: gpd.GeoDataFrame,
    raster_path: Union[str, Path],
    labels: Optional[List[str]] = None,
    drop_na: bool = True,
) -> gpd.GeoDataFrame:
    """Annotate points with environmental variable values.

    Args:
        points: GeoDataFrame of points
        raster_path: Path to the environmental raster
        labels: Names for the raster bands; read from the raster when None
        drop_na: Drop points with any missing predictor value

    Returns:
        Annotated GeoDataFrame
    """
    if labels is None:
        labels = raster_band_names(load_environmental_variables(raster_path))
    try:
        annotated = ela.annotate(points, str(raster_path), labels=labels)
    except Exception as e:
        logger.error(f"Error annotating points: {e}")
        raise

    if drop_na:
        n_before = len(annotated)
        annotated = annotated.dropna(subset=labels)
        n_dropped = n_before - len(annotated)
        if n_dropped:
            logger.warning(f"Dropped {n_dropped} points with missing environmental values")
    return annotated


def predictor_columns(gdf: pd.DataFrame) -> List[str]:
    """Numeric columns that can be used as model predictors."""
    return [
        c for c in gdf.columns
        if c not in RESERVED_COLUMNS and is_numeric_dtype(gdf[c])
    ]
