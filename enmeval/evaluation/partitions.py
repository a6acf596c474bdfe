"""Partitioning schemes for occurrence and background data.

Every scheme assigns integer group labels to occurrences and background
points. Background label 0 means the background is not partitioned: every
fold uses all background points for training and validation.
"""

import logging
from enum import StrEnum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import geopandas as gpd
import numpy as np
from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)


class PartitionMethod(StrEnum):
    RANDOM_KFOLD = "randomkfold"
    JACKKNIFE = "jackknife"
    BLOCK = "block"
    CHECKERBOARD = "checkerboard"
    TESTING = "testing"
    USER = "user"
    NONE = "none"


BLOCK_ORIENTATIONS = ("lat_lon", "lon_lat", "lat_lat", "lon_lon")


class Partition(BaseModel):
    method: PartitionMethod
    occs_grp: np.ndarray
    bg_grp: np.ndarray
    settings: Dict[str, Any] = {}

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def n_folds(self) -> int:
        return int(len(np.unique(self.occs_grp)))

    @property
    def folds(self) -> List[int]:
        """Group labels that are held out in turn for validation."""
        if self.method == PartitionMethod.NONE:
            return []
        return [int(g) for g in np.unique(self.occs_grp)]

    @property
    def bg_partitioned(self) -> bool:
        return bool(np.any(self.bg_grp != 0))


def _coords(gdf: gpd.GeoDataFrame) -> Tuple[np.ndarray, np.ndarray]:
    return np.asarray(gdf.geometry.x, dtype=float), np.asarray(gdf.geometry.y, dtype=float)


def _midpoint_split(values: np.ndarray, n_groups: int) -> Tuple[np.ndarray, np.ndarray]:
    """Split values into rank-balanced groups.

    Returns the group (0-based) of every value and the thresholds between
    neighbouring groups, placed halfway between the closest values.
    """
    order = np.argsort(values, kind="stable")
    chunks = np.array_split(order, n_groups)
    groups = np.empty(values.size, dtype=int)
    thresholds = []
    for i, chunk in enumerate(chunks):
        groups[chunk] = i
        if i > 0:
            thresholds.append((values[chunks[i - 1]].max() + values[chunk].min()) / 2)
    return groups, np.asarray(thresholds)


def random_kfold(
    occs: gpd.GeoDataFrame,
    bg: gpd.GeoDataFrame,
    kfolds: int,
    random_state: Optional[Union[int, np.random.Generator]] = None,
) -> Partition:
    """Random assignment of occurrences into k balanced groups."""
    n = len(occs)
    if kfolds < 2 or kfolds > n:
        raise ValueError(f"kfolds must be between 2 and the number of occurrences ({n}); got {kfolds}")
    rng = np.random.default_rng(random_state)
    occs_grp = rng.permutation(np.arange(n) % kfolds) + 1
    return Partition(
        method=PartitionMethod.RANDOM_KFOLD,
        occs_grp=occs_grp,
        bg_grp=np.zeros(len(bg), dtype=int),
        settings={"kfolds": kfolds},
    )


def jackknife(occs: gpd.GeoDataFrame, bg: gpd.GeoDataFrame) -> Partition:
    """Leave-one-out: every occurrence forms its own group."""
    if len(occs) < 2:
        raise ValueError("Jackknife partitioning requires at least 2 occurrences")
    return Partition(
        method=PartitionMethod.JACKKNIFE,
        occs_grp=np.arange(1, len(occs) + 1),
        bg_grp=np.zeros(len(bg), dtype=int),
        settings={},
    )


def block(
    occs: gpd.GeoDataFrame,
    bg: gpd.GeoDataFrame,
    orientation: str = "lat_lon",
) -> Partition:
    """Four spatial blocks with a balanced number of occurrences.

    For `lat_lon` the occurrences are first split by latitude, then each half
    by longitude, giving 1 = south-west, 2 = south-east, 3 = north-west,
    4 = north-east. Background points are assigned by the same lines.
    `lat_lat` and `lon_lon` give four bands along one axis.
    """
    if orientation not in BLOCK_ORIENTATIONS:
        raise ValueError(f"orientation must be one of {BLOCK_ORIENTATIONS}; got '{orientation}'")
    if len(occs) < 4:
        raise ValueError("Block partitioning requires at least 4 occurrences")

    occs_x, occs_y = _coords(occs)
    bg_x, bg_y = _coords(bg)
    axes = {"lon": (occs_x, bg_x), "lat": (occs_y, bg_y)}
    first, second = orientation.split("_")

    if first == second:
        occs_values, bg_values = axes[first]
        occs_grp, thresholds = _midpoint_split(occs_values, 4)
        bg_grp = np.searchsorted(thresholds, bg_values, side="right")
        return Partition(
            method=PartitionMethod.BLOCK,
            occs_grp=occs_grp + 1,
            bg_grp=bg_grp + 1,
            settings={"orientation": orientation},
        )

    occs_first, bg_first = axes[first]
    occs_second, bg_second = axes[second]
    occs_half, (first_threshold,) = _midpoint_split(occs_first, 2)
    bg_half = (bg_first > first_threshold).astype(int)

    occs_grp = np.zeros(len(occs), dtype=int)
    bg_grp = np.zeros(len(bg), dtype=int)
    for half in (0, 1):
        occs_idx = np.flatnonzero(occs_half == half)
        sub_groups, (second_threshold,) = _midpoint_split(occs_second[occs_idx], 2)
        occs_grp[occs_idx] = 1 + 2 * half + sub_groups
        bg_idx = np.flatnonzero(bg_half == half)
        bg_grp[bg_idx] = 1 + 2 * half + (bg_second[bg_idx] > second_threshold).astype(int)

    return Partition(
        method=PartitionMethod.BLOCK,
        occs_grp=occs_grp,
        bg_grp=bg_grp,
        settings={"orientation": orientation},
    )


def _checker(
    x: np.ndarray, y: np.ndarray, origin: Tuple[float, float], cell_size: float
) -> np.ndarray:
    col = np.floor((x - origin[0]) / cell_size).astype(int)
    row = np.floor((y - origin[1]) / cell_size).astype(int)
    return (col + row) % 2


def checkerboard(
    occs: gpd.GeoDataFrame,
    bg: gpd.GeoDataFrame,
    resolution: float,
    aggregation_factor: Union[int, Sequence[int]] = 2,
    origin: Optional[Tuple[float, float]] = None,
) -> Partition:
    """Checkerboard partitions over a grid aligned with the predictor rasters.

    One aggregation factor gives the binary checkerboard (2 groups) with cells
    of `resolution * aggregation_factor`. Two factors give the hierarchical
    checkerboard (4 groups): a fine checkerboard nested in a coarse one whose
    cells are a further `aggregation_factor[1]` times larger.
    """
    factors = [int(aggregation_factor)] if np.isscalar(aggregation_factor) else [int(a) for a in aggregation_factor]  # type: ignore
    if len(factors) not in (1, 2) or any(a < 1 for a in factors):
        raise ValueError(f"aggregation_factor must be one or two positive integers; got {aggregation_factor}")
    if resolution is None or resolution <= 0:
        raise ValueError("Checkerboard partitioning requires a positive raster resolution")

    occs_x, occs_y = _coords(occs)
    bg_x, bg_y = _coords(bg)
    if origin is None:
        origin = (
            float(min(occs_x.min(), bg_x.min())),
            float(min(occs_y.min(), bg_y.min())),
        )

    fine_size = resolution * factors[0]
    occs_grp = _checker(occs_x, occs_y, origin, fine_size) + 1
    bg_grp = _checker(bg_x, bg_y, origin, fine_size) + 1
    if len(factors) == 2:
        coarse_size = fine_size * factors[1]
        occs_grp = occs_grp + 2 * _checker(occs_x, occs_y, origin, coarse_size)
        bg_grp = bg_grp + 2 * _checker(bg_x, bg_y, origin, coarse_size)

    n_groups = len(np.unique(occs_grp))
    if n_groups < 2:
        raise ValueError(
            "All occurrences fall in one checkerboard group; use a smaller aggregation factor"
        )
    if len(factors) == 2 and n_groups < 4:
        logger.warning(f"Hierarchical checkerboard produced only {n_groups} occurrence groups")

    return Partition(
        method=PartitionMethod.CHECKERBOARD,
        occs_grp=occs_grp,
        bg_grp=bg_grp,
        settings={"aggregation_factor": factors, "resolution": resolution, "origin": list(origin)},
    )


def testing(occs: gpd.GeoDataFrame, bg: gpd.GeoDataFrame) -> Partition:
    """All occurrences train the model, which is evaluated on a separate testing set."""
    return Partition(
        method=PartitionMethod.TESTING,
        occs_grp=np.ones(len(occs), dtype=int),
        bg_grp=np.zeros(len(bg), dtype=int),
        settings={},
    )


def user(
    occs: gpd.GeoDataFrame,
    bg: gpd.GeoDataFrame,
    occs_grp: Sequence[int],
    bg_grp: Sequence[int],
) -> Partition:
    """User-specified group labels."""
    occs_grp = np.asarray(occs_grp, dtype=int)
    bg_grp = np.asarray(bg_grp, dtype=int)
    if occs_grp.size != len(occs) or bg_grp.size != len(bg):
        raise ValueError(
            f"User groups must match the data: {occs_grp.size} occurrence labels for {len(occs)} occurrences, "
            f"{bg_grp.size} background labels for {len(bg)} background points"
        )
    if len(np.unique(occs_grp)) < 2:
        raise ValueError("User partitions need at least 2 occurrence groups")
    return Partition(
        method=PartitionMethod.USER,
        occs_grp=occs_grp,
        bg_grp=bg_grp,
        settings={},
    )


def no_partition(occs: gpd.GeoDataFrame, bg: gpd.GeoDataFrame) -> Partition:
    return Partition(
        method=PartitionMethod.NONE,
        occs_grp=np.zeros(len(occs), dtype=int),
        bg_grp=np.zeros(len(bg), dtype=int),
        settings={},
    )


def partition(
    method: str,
    occs: gpd.GeoDataFrame,
    bg: gpd.GeoDataFrame,
    random_state: Optional[Union[int, np.random.Generator]] = None,
    user_grp: Optional[Dict[str, Sequence[int]]] = None,
    **settings: Any,
) -> Partition:
    """Partition occurrences and background by method name.

    Args:
        method: One of the PartitionMethod values
        occs: Occurrence points
        bg: Background points
        random_state: Seed or generator for random k-fold
        user_grp: Mapping with `occs_grp` and `bg_grp` for user partitions
        **settings: Method settings (kfolds, orientation, resolution, aggregation_factor, origin)

    Returns:
        Partition with group labels for occurrences and background
    """
    try:
        method = PartitionMethod(method)
    except ValueError:
        raise ValueError(
            f"Unknown partition method '{method}'. Use one of {[m.value for m in PartitionMethod]}."
        ) from None

    if method == PartitionMethod.RANDOM_KFOLD:
        if "kfolds" not in settings:
            raise ValueError("randomkfold partitioning requires the 'kfolds' setting")
        return random_kfold(occs, bg, int(settings["kfolds"]), random_state=random_state)
    if method == PartitionMethod.JACKKNIFE:
        return jackknife(occs, bg)
    if method == PartitionMethod.BLOCK:
        return block(occs, bg, orientation=settings.get("orientation", "lat_lon"))
    if method == PartitionMethod.CHECKERBOARD:
        if "resolution" not in settings:
            raise ValueError("checkerboard partitioning requires the 'resolution' setting")
        origin = settings.get("origin")
        return checkerboard(
            occs,
            bg,
            resolution=float(settings["resolution"]),
            aggregation_factor=settings.get("aggregation_factor", 2),
            origin=tuple(origin) if origin is not None else None,  # type: ignore
        )
    if method == PartitionMethod.TESTING:
        return testing(occs, bg)
    if method == PartitionMethod.USER:
        if user_grp is None:
            raise ValueError("user partitioning requires user_grp with 'occs_grp' and 'bg_grp'")
        return user(occs, bg, user_grp["occs_grp"], user_grp["bg_grp"])
    return no_partition(occs, bg)
