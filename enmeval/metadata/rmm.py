"""Range model metadata (RMM) built from tuning results.

The metadata object is a nested dictionary following the sections of the
range model metadata standard (Merow et al. 2019, Global Ecology and
Biogeography 28: 1912-1924): authorship, studyObjective, data, dataPrep,
model, prediction, assessment and code. It can be shared as supplementary
information for a manuscript or with collaborators.
"""

import copy
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import numpy as np
import pandas as pd
import xarray as xr

from enmeval.data.loaders import load_environmental_variables, raster_band_names
from enmeval.evaluation.partitions import PartitionMethod
from enmeval.evaluation.tuning import ENMEvaluation
from enmeval.models.algorithms import (
    Algorithm,
    algorithm_citation,
    algorithm_version,
    fitted_estimator,
)
from enmeval.__version__ import __version__
from enmeval.utils.io import write_json

logger = logging.getLogger(__name__)

RMM = Dict[str, Any]

_TEMPLATE: RMM = {
    "authorship": {
        "rmmName": None,
        "names": None,
        "contact": None,
        "relatedReferences": None,
        "license": None,
        "authorNotes": None,
    },
    "studyObjective": {
        "purpose": None,
        "rangeType": None,
        "invasion": None,
        "transfer": None,
    },
    "data": {
        "occurrence": {
            "taxon": None,
            "dataType": None,
            "sources": None,
            "spatialAccuracy": None,
            "temporalAccuracy": None,
            "yearMin": None,
            "yearMax": None,
            "presenceSampleSize": None,
            "backgroundSampleSize": None,
            "absenceSampleSize": None,
        },
        "environment": {
            "variableNames": None,
            "sources": None,
            "resolution": None,
            "extent": None,
            "projection": None,
            "yearMin": None,
            "yearMax": None,
        },
        "transfer": {
            "environment1": {
                "variableNames": None,
                "sources": None,
                "resolution": None,
                "extent": None,
                "projection": None,
            },
        },
    },
    "dataPrep": {
        "biological": {
            "duplicateRemoval": None,
            "spatialThinning": None,
            "geographicalOutlierRemoval": None,
        },
        "environmental": {
            "changeResolution": None,
            "changeExtent": None,
        },
    },
    "model": {
        "algorithms": None,
        "algorithmCitation": None,
        "tuneSettings": None,
        "speciesCount": None,
        "selectionRules": None,
        "finalModelSettings": None,
        "partition": {
            "numberFolds": None,
            "partitionSet": None,
            "partitionRule": None,
            "occurrenceSubsampling": None,
            "notes": None,
        },
        "algorithm": {},
    },
    "prediction": {
        "continuous": {"units": None},
        "binary": {"thresholdSelection": None},
        "uncertainty": {"units": None},
    },
    "assessment": {
        "trainingDataStats": {},
        "validationDataStats": {},
        "testingDataStats": {},
    },
    "code": {
        "software": {
            "platform": "Python",
            "packages": None,
        },
        "demoCode": None,
        "fullCode": None,
    },
}

# (partitionSet, partitionRule, occurrenceSubsampling, notes) per scheme
PARTITION_METADATA = {
    "randomkfold": (
        "random k-fold",
        "random partition assignment with user-specified number of partitions",
        "k-fold cross validation",
        None,
    ),
    "jackknife": (
        "jackknife (leave-one-out)",
        "leave-one-out partitions (each occurrence locality receives its own partition)",
        "k-fold cross validation",
        None,
    ),
    "block": (
        "spatial block",
        "four spatial partitions defined by latitude/longitude lines that ensure a balanced number "
        "of occurrence localities across partitions",
        "k-fold cross validation",
        "background points also partitioned",
    ),
    "checkerboard_binary": (
        "binary checkerboard",
        "two spatial partitions in a checkerboard formation that subdivide geographic space equally "
        "but do not ensure a balanced number of occurrence localities across partitions",
        "k-fold cross validation",
        "background points also partitioned",
    ),
    "checkerboard_hierarchical": (
        "hierarchical checkerboard",
        "four spatial partitions with two levels of spatial aggregation in a checkerboard formation "
        "that subdivide geographic space equally but do not ensure a balanced number of occurrence "
        "localities across partitions",
        "k-fold cross validation",
        "background points also partitioned",
    ),
    "testing": (
        "testing",
        "evaluation on a testing dataset",
        "none",
        None,
    ),
    "user": (
        "user-specified",
        None,
        "k-fold cross validation",
        None,
    ),
    "none": (
        "none",
        None,
        "none",
        None,
    ),
}


def rmm_template() -> RMM:
    """An empty metadata object."""
    return copy.deepcopy(_TEMPLATE)


def rmm_set(rmm: RMM, field: str, value: Any) -> None:
    """Set a field by dotted path, creating intermediate sections."""
    keys = field.split(".")
    node = rmm
    for key in keys[:-1]:
        node = node.setdefault(key, {})
    node[keys[-1]] = value


def rmm_get(rmm: RMM, field: str, default: Any = None) -> Any:
    """Get a field by dotted path."""
    node: Any = rmm
    for key in field.split("."):
        if not isinstance(node, dict) or key not in node:
            return default
        node = node[key]
    return node


def _unique(values: pd.Series) -> List[Any]:
    return [v.item() if isinstance(v, np.generic) else v for v in pd.unique(values)]


def _format_number(value: Any, digits: Optional[int] = None) -> str:
    if value is None or (isinstance(value, (float, np.floating)) and np.isnan(value)):
        return "NA"
    if digits is not None:
        return f"{round(float(value), digits):g}"
    return str(float(value))


def _labelled(e: ENMEvaluation, column: str, digits: Optional[int] = None) -> List[str]:
    """Values of a results column labelled by tune settings, e.g. 'fc.L_rm.1: 0.812'."""
    return [
        f"{label}: {_format_number(value, digits)}"
        for label, value in zip(e.results["tune_args"], e.results[column])
    ]


def _has_stat(e: ENMEvaluation, column: str) -> bool:
    return column in e.results.columns and not e.results[column].isna().all()


def _environment_metadata(rmm: RMM, envs: Union[str, Path, xr.DataArray, xr.Dataset]) -> None:
    if isinstance(envs, (str, Path)):
        envs = load_environmental_variables(envs)
    xmin, ymin, xmax, ymax = envs.rio.bounds()
    crs = envs.rio.crs
    rmm_set(rmm, "data.environment.variableNames", raster_band_names(envs))
    rmm_set(rmm, "data.environment.resolution", abs(float(envs.rio.resolution()[0])))
    rmm_set(rmm, "data.environment.extent", f"{xmin}, {xmax}, {ymin}, {ymax}")
    rmm_set(rmm, "data.environment.projection", crs.to_wkt() if crs is not None else None)


def _partition_metadata(rmm: RMM, e: ENMEvaluation) -> None:
    rmm_set(rmm, "model.partition.numberFolds", int(len(np.unique(e.occs_grp))))

    key = e.partition_method.value
    factors: List[int] = []
    if e.partition_method == PartitionMethod.CHECKERBOARD:
        factors = list(e.partition_settings.get("aggregation_factor", []))
        key = "checkerboard_binary" if len(factors) == 1 else "checkerboard_hierarchical"

    partition_set, rule, subsampling, notes = PARTITION_METADATA[key]
    rmm_set(rmm, "model.partition.partitionSet", partition_set)
    if rule is not None:
        rmm_set(rmm, "model.partition.partitionRule", rule)
    rmm_set(rmm, "model.partition.occurrenceSubsampling", subsampling)
    if notes is not None:
        rmm_set(rmm, "model.partition.notes", notes)
    if e.partition_method == PartitionMethod.CHECKERBOARD:
        rmm_set(rmm, "model.partition.notes", f"aggregation factor = {', '.join(str(a) for a in factors)}")


def _algorithm_metadata(rmm: RMM, e: ENMEvaluation) -> None:
    ts = e.tune_settings
    rmm_set(rmm, "model.algorithms", algorithm_version(e.algorithm))
    rmm_set(rmm, "model.algorithmCitation", algorithm_citation(e.algorithm))

    if e.algorithm == Algorithm.MAXNET:
        rmm_set(rmm, "model.algorithm.maxent.featureSet", _unique(ts["fc"]))
        rmm_set(rmm, "model.algorithm.maxent.regularizationMultiplierSet", _unique(ts["rm"]))
        rmm_set(rmm, "model.algorithm.maxent.clamping", e.other_settings.get("clamp"))
        rmm_set(rmm, "model.algorithm.maxent.samplingBiasRule", "ignored")
        rmm_set(rmm, "model.algorithm.maxent.notes", "cloglog transformation used for model predictions")
    elif e.algorithm == Algorithm.BOOSTED_REGRESSION_TREES:
        estimators = [fitted_estimator(m) for m in e.models.values()]
        rmm_set(rmm, "model.algorithm.brt.interactionDepth", _unique(ts["tree_complexity"]))
        rmm_set(rmm, "model.algorithm.brt.bagFraction", _unique(ts["bag_fraction"]))
        rmm_set(rmm, "model.algorithm.brt.learningRate", _unique(ts["learning_rate"]))
        rmm_set(rmm, "model.algorithm.brt.distribution", "binomial")
        rmm_set(rmm, "model.algorithm.brt.nTrees", [int(getattr(m, "n_estimators_", m.n_estimators)) for m in estimators])
        rmm_set(rmm, "model.algorithm.brt.shrinkage", [float(m.learning_rate) for m in estimators])
    elif e.algorithm == Algorithm.RANDOM_FOREST:
        rmm_set(rmm, "model.algorithm.randomForest.ntree", _unique(ts["ntree"]))
        rmm_set(rmm, "model.algorithm.randomForest.mtry", _unique(ts["mtry"]))
        rmm_set(rmm, "model.algorithm.randomForest.maxnodes", "default: maximum possible")


def _assessment_metadata(rmm: RMM, e: ENMEvaluation) -> None:
    omission = {
        "or.mtp": _labelled(e, "or_mtp_avg", digits=3),
        "or.10p": _labelled(e, "or_10p_avg", digits=3),
    }
    boyce = _labelled(e, "cbi_val_avg") if _has_stat(e, "cbi_val_avg") else "none"

    if e.partition_method == PartitionMethod.TESTING:
        section = "assessment.testingDataStats"
    else:
        rmm_set(rmm, "assessment.trainingDataStats.AUC", _labelled(e, "auc_train", digits=3))
        rmm_set(rmm, "assessment.trainingDataStats.boyce", _labelled(e, "cbi_train", digits=3))
        section = "assessment.validationDataStats"

    rmm_set(rmm, f"{section}.AUC", _labelled(e, "auc_val_avg"))
    rmm_set(rmm, f"{section}.AUCDiff", _labelled(e, "auc_diff_avg"))
    rmm_set(rmm, f"{section}.boyce", boyce)
    rmm_set(rmm, f"{section}.omissionRate", omission)


def build_rmm(
    e: ENMEvaluation,
    envs: Optional[Union[str, Path, xr.DataArray, xr.Dataset]] = None,
    rmm: Optional[RMM] = None,
) -> RMM:
    """Build a range model metadata object from tuning results.

    Args:
        e: Completed tuning run
        envs: Predictor rasters (path or rioxarray object) used to describe the
              environmental data, which the tuning results do not hold
        rmm: Existing metadata object to add fields to. A new one is created when None.

    Returns:
        Nested dictionary of metadata fields
    """
    rmm = rmm_template() if rmm is None else rmm
    rmm_set(rmm, "code.software.packages", f"enmeval {__version__}")

    rmm_set(rmm, "data.occurrence.taxon", e.taxon_name)
    rmm_set(rmm, "data.occurrence.dataType", "presence only")
    rmm_set(rmm, "data.occurrence.presenceSampleSize", len(e.occs))
    rmm_set(rmm, "data.occurrence.backgroundSampleSize", len(e.bg))

    if envs is not None:
        _environment_metadata(rmm, envs)

    rmm_set(rmm, "model.tuneSettings", e.tune_settings.to_dict(orient="records"))
    _partition_metadata(rmm, e)
    _algorithm_metadata(rmm, e)
    _assessment_metadata(rmm, e)

    logger.info(f"Built range model metadata for {e.algorithm.value} with {len(e.results)} settings")
    return rmm


def _flatten(node: Any, prefix: str = "") -> List[tuple]:
    if isinstance(node, dict):
        if not node:
            return [(prefix, None)] if prefix else []
        rows = []
        for key, value in node.items():
            rows.extend(_flatten(value, f"{prefix}.{key}" if prefix else key))
        return rows
    if isinstance(node, (list, tuple)):
        return [(prefix, "; ".join(str(item) for item in node))]
    return [(prefix, node)]


def rmm_to_table(rmm: RMM) -> pd.DataFrame:
    """Flatten a metadata object into a field/value table."""
    return pd.DataFrame(_flatten(rmm), columns=["field", "value"])


def rmm_missing_fields(rmm: RMM) -> List[str]:
    """Dotted paths of fields that have not been filled in."""
    table = rmm_to_table(rmm)
    return table.loc[table["value"].isna(), "field"].tolist()


def rmm_to_json(rmm: RMM, output_path: Union[str, Path]) -> Path:
    return write_json(rmm, output_path)
