import pytest
import numpy as np
import geopandas as gpd


def make_points(rng: np.random.Generator, n: int, xmin: float, xmax: float) -> gpd.GeoDataFrame:
    """Points over a 10 x 10 degree area with predictors that track the coordinates."""
    x = rng.uniform(xmin, xmax, n)
    y = rng.uniform(0, 10, n)
    return gpd.GeoDataFrame(
        {
            "bio1": x + rng.normal(0, 0.5, n),
            "bio2": 0.5 * y + rng.normal(0, 0.5, n),
        },
        geometry=gpd.points_from_xy(x, y),
        crs="EPSG:4326",
    )


@pytest.fixture
def config() -> dict:
    return {
        "n_occs": 40,
        "n_bg": 300,
        "seed": 42,
    }


@pytest.fixture
def occs(config: dict) -> gpd.GeoDataFrame:
    """Occurrences restricted to the warmer (eastern) half of the area."""
    rng = np.random.default_rng(config["seed"])
    return make_points(rng, config["n_occs"], 5, 10)


@pytest.fixture
def bg(config: dict) -> gpd.GeoDataFrame:
    rng = np.random.default_rng(config["seed"] + 1)
    return make_points(rng, config["n_bg"], 0, 10)


@pytest.fixture
def occs_testing(config: dict) -> gpd.GeoDataFrame:
    rng = np.random.default_rng(config["seed"] + 2)
    return make_points(rng, 15, 5, 10)
