import pytest
import numpy as np
import pandas as pd
from sklearn.ensemble import RandomForestClassifier
from sklearn.pipeline import Pipeline

from enmeval.models import FeatureSubsetter
from enmeval.models.algorithms import (
    Algorithm,
    algorithm_citation,
    algorithm_version,
    build_model,
    fitted_estimator,
    parse_feature_classes,
    tune_grid,
    tune_label,
)


def test_tune_grid_maxnet_labels():
    grid = tune_grid("maxnet", {"fc": ["L", "LQ"], "rm": [1, 2]})
    assert list(grid.columns) == ["fc", "rm", "tune_args"]
    assert grid["tune_args"].tolist() == ["fc.L_rm.1", "fc.L_rm.2", "fc.LQ_rm.1", "fc.LQ_rm.2"]


def test_tune_grid_scalar_values():
    grid = tune_grid("randomForest", {"ntree": 500, "mtry": [1, 2]})
    assert len(grid) == 2
    assert grid["tune_args"].tolist() == ["ntree.500_mtry.1", "ntree.500_mtry.2"]


def test_tune_label_formats_floats():
    assert tune_label({"fc": "LQH", "rm": 0.5}, ["fc", "rm"]) == "fc.LQH_rm.0.5"
    assert tune_label({"fc": "L", "rm": 2.0}, ["fc", "rm"]) == "fc.L_rm.2"


@pytest.mark.parametrize(
    "algorithm, tune_args",
    [
        ("maxnet", {"fc": ["LX"], "rm": [1]}),
        ("maxnet", {"fc": ["L"], "rm": [0]}),
        ("maxnet", {"fc": ["L"]}),
        ("bioclim", {"tails": ["middle"]}),
        ("boostedRegressionTrees", {"tree_complexity": [1], "learning_rate": [0.1], "bag_fraction": [1.5]}),
        ("randomForest", {"ntree": [10], "mtry": [1], "nodesize": [5]}),
    ],
)
def test_tune_grid_invalid(algorithm, tune_args):
    with pytest.raises(ValueError):
        tune_grid(algorithm, tune_args)


def test_tune_grid_duplicate_labels():
    with pytest.raises(ValueError, match="duplicate"):
        tune_grid("maxnet", {"fc": ["L", "L"], "rm": [1]})


def test_unknown_algorithm():
    with pytest.raises(ValueError):
        tune_grid("glm", {})


def test_parse_feature_classes():
    assert parse_feature_classes("lqh") == ["linear", "quadratic", "hinge"]


def test_build_model_pipeline():
    model = build_model("maxnet", {"fc": "LQ", "rm": 2}, ["bio1", "bio2"])
    assert isinstance(model, Pipeline)
    assert isinstance(model.steps[0][1], FeatureSubsetter)
    estimator = fitted_estimator(model)
    assert estimator.beta_multiplier == 2.0
    assert list(estimator.feature_types) == ["linear", "quadratic"]


def test_build_model_random_forest_clips_mtry():
    model = build_model("randomForest", {"ntree": 10, "mtry": 5}, ["bio1", "bio2"], random_state=0)
    estimator = fitted_estimator(model)
    assert isinstance(estimator, RandomForestClassifier)
    assert estimator.max_features == 2
    assert estimator.n_estimators == 10


def test_feature_subsetter_selects_and_orders():
    X = pd.DataFrame({"bio2": [1.0], "grp": [1], "bio1": [2.0]})
    out = FeatureSubsetter(["bio1", "bio2"]).fit_transform(X)
    assert list(out.columns) == ["bio1", "bio2"]
    with pytest.raises(ValueError, match="missing"):
        FeatureSubsetter(["bio3"]).transform(X)


def test_algorithm_metadata_strings():
    assert algorithm_version(Algorithm.RANDOM_FOREST).startswith("randomForest using scikit-learn")
    assert algorithm_version("maxnet").startswith("maxnet using elapid")
    assert len(algorithm_citation("boostedRegressionTrees")) == 3
    assert np.all([isinstance(c, str) for c in algorithm_citation("bioclim")])
