import json

import pytest
import numpy as np
import xarray as xr
import rioxarray  # noqa: F401

from enmeval.evaluation.tuning import enm_evaluate
from enmeval.models.algorithms import algorithm_citation
from enmeval.metadata.rmm import (
    build_rmm,
    rmm_get,
    rmm_missing_fields,
    rmm_set,
    rmm_template,
    rmm_to_json,
    rmm_to_table,
)


@pytest.fixture
def envs() -> xr.DataArray:
    """A 2-band 10 x 10 degree raster at 1 degree resolution."""
    data = np.zeros((2, 10, 10))
    da = xr.DataArray(
        data,
        dims=("band", "y", "x"),
        coords={"band": [1, 2], "y": np.arange(9.5, 0, -1), "x": np.arange(0.5, 10, 1)},
    )
    return da.rio.write_crs("EPSG:4326")


@pytest.fixture
def rf_block(occs, bg):
    return enm_evaluate(
        occs, bg, "randomForest", {"ntree": 10, "mtry": [1, 2]}, "block",
        taxon_name="Myotis daubentonii", random_state=0, quiet=True,
    )


def test_template_helpers():
    rmm = rmm_template()
    assert rmm_get(rmm, "data.occurrence.taxon") is None
    rmm_set(rmm, "authorship.names", "A. Ecologist")
    rmm_set(rmm, "model.algorithm.custom.notes", "added")
    assert rmm_get(rmm, "authorship.names") == "A. Ecologist"
    assert rmm_get(rmm, "model.algorithm.custom.notes") == "added"
    assert rmm_get(rmm, "does.not.exist", default="x") == "x"
    # Templates are independent copies
    assert rmm_get(rmm_template(), "authorship.names") is None


def test_occurrence_and_code_fields(rf_block):
    rmm = build_rmm(rf_block)
    assert rmm_get(rmm, "data.occurrence.taxon") == "Myotis daubentonii"
    assert rmm_get(rmm, "data.occurrence.dataType") == "presence only"
    assert rmm_get(rmm, "data.occurrence.presenceSampleSize") == 40
    assert rmm_get(rmm, "data.occurrence.backgroundSampleSize") == 300
    assert rmm_get(rmm, "code.software.platform") == "Python"
    assert rmm_get(rmm, "code.software.packages").startswith("enmeval ")
    assert len(rmm_get(rmm, "model.tuneSettings")) == 2


def test_block_partition_fields(rf_block):
    rmm = build_rmm(rf_block)
    assert rmm_get(rmm, "model.partition.numberFolds") == 4
    assert rmm_get(rmm, "model.partition.partitionSet") == "spatial block"
    assert rmm_get(rmm, "model.partition.occurrenceSubsampling") == "k-fold cross validation"
    assert rmm_get(rmm, "model.partition.notes") == "background points also partitioned"


def test_random_forest_fields(rf_block):
    rmm = build_rmm(rf_block)
    assert rmm_get(rmm, "model.algorithms").startswith("randomForest using scikit-learn")
    assert rmm_get(rmm, "model.algorithm.randomForest.ntree") == [10]
    assert rmm_get(rmm, "model.algorithm.randomForest.mtry") == [1, 2]
    assert rmm_get(rmm, "model.algorithm.randomForest.maxnodes") == "default: maximum possible"


def test_assessment_fields(rf_block):
    rmm = build_rmm(rf_block)
    training_auc = rmm_get(rmm, "assessment.trainingDataStats.AUC")
    assert [s.split(": ")[0] for s in training_auc] == ["ntree.10_mtry.1", "ntree.10_mtry.2"]
    assert len(rmm_get(rmm, "assessment.validationDataStats.AUC")) == 2
    omission = rmm_get(rmm, "assessment.validationDataStats.omissionRate")
    assert set(omission) == {"or.mtp", "or.10p"}
    assert rmm_get(rmm, "assessment.testingDataStats") == {}


def test_checkerboard_fields(occs, bg):
    e = enm_evaluate(
        occs, bg, "randomForest", {"ntree": 10, "mtry": 1}, "checkerboard",
        partition_settings={"resolution": 1.0, "aggregation_factor": [2, 2]},
        random_state=0, quiet=True,
    )
    rmm = build_rmm(e)
    assert rmm_get(rmm, "model.partition.partitionSet") == "hierarchical checkerboard"
    assert rmm_get(rmm, "model.partition.notes") == "aggregation factor = 2, 2"


def test_testing_fields(occs, bg, occs_testing):
    e = enm_evaluate(
        occs, bg, "boostedRegressionTrees",
        {"tree_complexity": 1, "learning_rate": 0.1, "bag_fraction": 0.75},
        "testing", occs_testing=occs_testing, random_state=0, quiet=True,
    )
    rmm = build_rmm(e)
    assert rmm_get(rmm, "model.partition.partitionSet") == "testing"
    assert rmm_get(rmm, "model.partition.occurrenceSubsampling") == "none"
    assert len(rmm_get(rmm, "assessment.testingDataStats.AUC")) == 1
    assert rmm_get(rmm, "assessment.trainingDataStats") == {}
    assert rmm_get(rmm, "model.algorithm.brt.distribution") == "binomial"
    assert rmm_get(rmm, "model.algorithm.brt.bagFraction") == [0.75]
    assert rmm_get(rmm, "model.algorithm.brt.nTrees")[0] >= 1


def test_environment_fields(rf_block, envs):
    rmm = build_rmm(rf_block, envs=envs)
    assert rmm_get(rmm, "data.environment.variableNames") == ["band_1", "band_2"]
    assert rmm_get(rmm, "data.environment.resolution") == pytest.approx(1.0)
    assert rmm_get(rmm, "data.environment.extent") == "0.0, 10.0, 0.0, 10.0"
    assert "WGS 84" in rmm_get(rmm, "data.environment.projection")


def test_table_and_json(rf_block, tmp_path):
    rmm = build_rmm(rf_block)
    table = rmm_to_table(rmm)
    assert list(table.columns) == ["field", "value"]
    assert "data.occurrence.taxon" in table["field"].tolist()
    assert "authorship.names" in rmm_missing_fields(rmm)
    assert "data.occurrence.taxon" not in rmm_missing_fields(rmm)

    path = rmm_to_json(rmm, tmp_path / "rmm.json")
    with open(path) as f:
        loaded = json.load(f)
    assert loaded["data"]["occurrence"]["taxon"] == "Myotis daubentonii"


BLOCK_RULE = (
    "four spatial partitions defined by latitude/longitude lines that ensure a balanced number "
    "of occurrence localities across partitions"
)
CHECKERBOARD_RULE = (
    "two spatial partitions in a checkerboard formation that subdivide geographic space equally "
    "but do not ensure a balanced number of occurrence localities across partitions"
)


@pytest.mark.parametrize(
    "method, settings, expected",
    [
        ("randomkfold", {"kfolds": 3}, (
            "random k-fold",
            "random partition assignment with user-specified number of partitions",
            "k-fold cross validation",
            None,
        )),
        ("jackknife", {}, (
            "jackknife (leave-one-out)",
            "leave-one-out partitions (each occurrence locality receives its own partition)",
            "k-fold cross validation",
            None,
        )),
        ("block", {}, (
            "spatial block", BLOCK_RULE, "k-fold cross validation", "background points also partitioned",
        )),
        ("checkerboard", {"resolution": 1.0, "aggregation_factor": 2}, (
            "binary checkerboard", CHECKERBOARD_RULE, "k-fold cross validation", "aggregation factor = 2",
        )),
        ("testing", {}, ("testing", "evaluation on a testing dataset", "none", None)),
        ("user", {}, ("user-specified", None, "k-fold cross validation", None)),
        ("none", {}, ("none", None, "none", None)),
    ],
)
def test_partition_wording(occs, bg, occs_testing, method, settings, expected):
    occs = occs.iloc[:12]
    user_grp = {"occs_grp": np.arange(12) % 2 + 1, "bg_grp": np.zeros(len(bg), dtype=int)}
    e = enm_evaluate(
        occs, bg, "randomForest", {"ntree": 5, "mtry": 1}, method,
        partition_settings=settings,
        occs_testing=occs_testing if method == "testing" else None,
        user_grp=user_grp if method == "user" else None,
        random_state=0, quiet=True,
    )
    rmm = build_rmm(e)
    partition_set, rule, subsampling, notes = expected
    assert rmm_get(rmm, "model.partition.partitionSet") == partition_set
    assert rmm_get(rmm, "model.partition.partitionRule") == rule
    assert rmm_get(rmm, "model.partition.occurrenceSubsampling") == subsampling
    assert rmm_get(rmm, "model.partition.notes") == notes


def test_maxnet_fields(occs, bg):
    e = enm_evaluate(
        occs, bg, "maxnet", {"fc": ["L", "LQ"], "rm": [1, 2]}, "block", random_state=0, quiet=True,
    )
    rmm = build_rmm(e)
    assert rmm_get(rmm, "model.algorithms").startswith("maxnet using elapid")
    assert rmm_get(rmm, "model.algorithmCitation") == algorithm_citation("maxnet")
    assert len(rmm_get(rmm, "model.algorithmCitation")) == 2
    assert rmm_get(rmm, "model.algorithm.maxent.featureSet") == ["L", "LQ"]
    assert rmm_get(rmm, "model.algorithm.maxent.regularizationMultiplierSet") == [1, 2]
    assert rmm_get(rmm, "model.algorithm.maxent.clamping") is True
    assert rmm_get(rmm, "model.algorithm.maxent.samplingBiasRule") == "ignored"
    assert rmm_get(rmm, "model.algorithm.maxent.notes") == "cloglog transformation used for model predictions"
    assert rmm_get(rmm, "model.algorithm.randomForest") is None
