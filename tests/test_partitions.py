import pytest
import numpy as np
import geopandas as gpd

from enmeval.evaluation.partitions import (
    PartitionMethod,
    block,
    checkerboard,
    jackknife,
    partition,
    random_kfold,
)


def points(coords) -> gpd.GeoDataFrame:
    xs, ys = zip(*coords)
    return gpd.GeoDataFrame(
        {"bio1": np.arange(len(xs), dtype=float)},
        geometry=gpd.points_from_xy(xs, ys),
        crs="EPSG:4326",
    )


def test_random_kfold_balanced(occs, bg):
    part = random_kfold(occs, bg, kfolds=4, random_state=1)
    groups, counts = np.unique(part.occs_grp, return_counts=True)
    assert groups.tolist() == [1, 2, 3, 4]
    assert counts.tolist() == [10, 10, 10, 10]
    assert not part.bg_partitioned
    assert part.settings == {"kfolds": 4}


def test_random_kfold_reproducible(occs, bg):
    a = random_kfold(occs, bg, kfolds=3, random_state=7)
    b = random_kfold(occs, bg, kfolds=3, random_state=7)
    np.testing.assert_array_equal(a.occs_grp, b.occs_grp)


@pytest.mark.parametrize("kfolds", [1, 41])
def test_random_kfold_invalid(occs, bg, kfolds):
    with pytest.raises(ValueError):
        random_kfold(occs, bg, kfolds=kfolds)


def test_jackknife(occs, bg):
    part = jackknife(occs, bg)
    assert part.n_folds == len(occs)
    assert sorted(part.occs_grp.tolist()) == list(range(1, len(occs) + 1))
    assert (part.bg_grp == 0).all()


def test_block_lat_lon_quadrants(occs, bg):
    part = block(occs, bg, orientation="lat_lon")
    groups, counts = np.unique(part.occs_grp, return_counts=True)
    assert groups.tolist() == [1, 2, 3, 4]
    assert counts.tolist() == [10, 10, 10, 10]
    assert set(np.unique(part.bg_grp)) <= {1, 2, 3, 4}
    assert part.bg_partitioned

    x, y = occs.geometry.x.to_numpy(), occs.geometry.y.to_numpy()
    # 1 = south-west, 2 = south-east, 3 = north-west, 4 = north-east
    assert y[part.occs_grp <= 2].max() < y[part.occs_grp >= 3].min()
    assert x[part.occs_grp == 1].max() < x[part.occs_grp == 2].min()
    assert x[part.occs_grp == 3].max() < x[part.occs_grp == 4].min()


def test_block_background_follows_occurrence_lines(occs, bg):
    part = block(occs, bg, orientation="lat_lon")
    occs_y = occs.geometry.y.to_numpy()
    bg_y = bg.geometry.y.to_numpy()
    south_max = occs_y[part.occs_grp <= 2].max()
    north_min = occs_y[part.occs_grp >= 3].min()
    assert (bg_y[part.bg_grp <= 2] < north_min).all()
    assert (bg_y[part.bg_grp >= 3] > south_max).all()


def test_block_lon_lon_bands(occs, bg):
    part = block(occs, bg, orientation="lon_lon")
    x = occs.geometry.x.to_numpy()
    for g in (1, 2, 3):
        assert x[part.occs_grp == g].max() < x[part.occs_grp == g + 1].min()


def test_block_invalid_orientation(occs, bg):
    with pytest.raises(ValueError, match="orientation"):
        block(occs, bg, orientation="diagonal")


def test_checkerboard_binary():
    occs = points([(0.5, 0.5), (2.5, 0.5), (2.5, 2.5), (0.5, 2.5)])
    bg = points([(1.5, 1.5), (3.5, 1.5)])
    part = checkerboard(occs, bg, resolution=1.0, aggregation_factor=2, origin=(0, 0))
    assert part.occs_grp.tolist() == [1, 2, 1, 2]
    assert part.bg_grp.tolist() == [1, 2]
    assert part.settings == {"aggregation_factor": [2], "resolution": 1.0, "origin": [0, 0]}


def test_checkerboard_hierarchical():
    occs = points([(0.5, 0.5), (2.5, 0.5), (4.5, 0.5), (6.5, 0.5)])
    bg = points([(0.5, 0.5)])
    part = checkerboard(occs, bg, resolution=1.0, aggregation_factor=[2, 2], origin=(0, 0))
    assert part.occs_grp.tolist() == [1, 2, 3, 4]
    assert part.n_folds == 4


def test_checkerboard_single_group_raises():
    occs = points([(0.5, 0.5), (0.6, 0.6)])
    bg = points([(0.7, 0.7)])
    with pytest.raises(ValueError, match="one checkerboard group"):
        checkerboard(occs, bg, resolution=1.0, aggregation_factor=10, origin=(0, 0))


def test_partition_dispatch(occs, bg):
    assert partition("testing", occs, bg).occs_grp.tolist() == [1] * len(occs)
    assert partition("none", occs, bg).folds == []
    part = partition("randomkfold", occs, bg, random_state=0, kfolds=5)
    assert part.method == PartitionMethod.RANDOM_KFOLD
    assert part.n_folds == 5


def test_partition_user(occs, bg):
    occs_grp = np.arange(len(occs)) % 2 + 1
    bg_grp = np.arange(len(bg)) % 2 + 1
    part = partition("user", occs, bg, user_grp={"occs_grp": occs_grp, "bg_grp": bg_grp})
    assert part.folds == [1, 2]
    assert part.bg_partitioned


def test_partition_user_length_mismatch(occs, bg):
    with pytest.raises(ValueError, match="User groups"):
        partition("user", occs, bg, user_grp={"occs_grp": [1, 2], "bg_grp": [0] * len(bg)})


def test_partition_errors(occs, bg):
    with pytest.raises(ValueError, match="Unknown partition method"):
        partition("spatialcv", occs, bg)
    with pytest.raises(ValueError, match="kfolds"):
        partition("randomkfold", occs, bg)
    with pytest.raises(ValueError, match="resolution"):
        partition("checkerboard", occs, bg)
    with pytest.raises(ValueError, match="user_grp"):
        partition("user", occs, bg)
