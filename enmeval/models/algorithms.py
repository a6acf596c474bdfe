# Algorithm registry: tuning arguments, model construction and citations.
import logging
from enum import StrEnum
from importlib.metadata import PackageNotFoundError, version
from itertools import product
from typing import Any, Dict, List, Optional, Sequence

import elapid as ela
import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator
from sklearn.ensemble import GradientBoostingClassifier, RandomForestClassifier
from sklearn.pipeline import Pipeline

from enmeval.models.feature_subsetter import FeatureSubsetter

logger = logging.getLogger(__name__)


class Algorithm(StrEnum):
    MAXNET = "maxnet"
    RANDOM_FOREST = "randomForest"
    BOOSTED_REGRESSION_TREES = "boostedRegressionTrees"
    BIOCLIM = "bioclim"


# Ordered: the order fixes the column order of the tuning grid and its labels
TUNE_ARGS: Dict[Algorithm, List[str]] = {
    Algorithm.MAXNET: ["fc", "rm"],
    Algorithm.RANDOM_FOREST: ["ntree", "mtry"],
    Algorithm.BOOSTED_REGRESSION_TREES: ["tree_complexity", "learning_rate", "bag_fraction"],
    Algorithm.BIOCLIM: ["tails"],
}

FEATURE_CLASSES = {
    "L": "linear",
    "Q": "quadratic",
    "H": "hinge",
    "P": "product",
    "T": "threshold",
}

BIOCLIM_TAILS = {
    "both": (2.5, 97.5),
    "low": (2.5, 100.0),
    "high": (0.0, 97.5),
}

# Upper bound for boosting; early stopping picks the fitted number of trees
MAX_BRT_TREES = 1000

CITATIONS: Dict[Algorithm, List[str]] = {
    Algorithm.MAXNET: [
        "Phillips, S. J., Anderson, R. P., Dudík, M., Schapire, R. E., & Blair, M. E. (2017). "
        "Opening the black box: An open-source release of Maxent. Ecography, 40(7), 887-893.",
        "Anderson, C. B. (2023). elapid: Species distribution modeling tools for Python. "
        "Journal of Open Source Software, 8(84), 4930.",
    ],
    Algorithm.RANDOM_FOREST: [
        "Breiman, L. (2001). Random forests. Machine Learning, 45(1), 5-32.",
        "Pedregosa, F., et al. (2011). Scikit-learn: Machine learning in Python. "
        "Journal of Machine Learning Research, 12, 2825-2830.",
    ],
    Algorithm.BOOSTED_REGRESSION_TREES: [
        "Friedman, J. H. (2001). Greedy function approximation: A gradient boosting machine. "
        "Annals of Statistics, 29(5), 1189-1232.",
        "Elith, J., Leathwick, J. R., & Hastie, T. (2008). A working guide to boosted regression trees. "
        "Journal of Animal Ecology, 77(4), 802-813.",
        "Pedregosa, F., et al. (2011). Scikit-learn: Machine learning in Python. "
        "Journal of Machine Learning Research, 12, 2825-2830.",
    ],
    Algorithm.BIOCLIM: [
        "Booth, T. H., Nix, H. A., Busby, J. R., & Hutchinson, M. F. (2014). BIOCLIM: the first species "
        "distribution modelling package, its early applications and relevance to most current MAXENT studies. "
        "Diversity and Distributions, 20(1), 1-9.",
    ],
}


def _package_version(name: str) -> str:
    try:
        return version(name)
    except PackageNotFoundError:
        return "unknown"


def algorithm_version(algorithm: str) -> str:
    """Software string describing the implementation behind an algorithm."""
    algorithm = Algorithm(algorithm)
    if algorithm == Algorithm.MAXNET:
        return f"{algorithm.value} using elapid {_package_version('elapid')}"
    if algorithm == Algorithm.BIOCLIM:
        return f"{algorithm.value} using NicheEnvelopeModel in elapid {_package_version('elapid')}"
    return f"{algorithm.value} using scikit-learn {_package_version('scikit-learn')}"


def algorithm_citation(algorithm: str) -> List[str]:
    return list(CITATIONS[Algorithm(algorithm)])


def parse_feature_classes(fc: str) -> List[str]:
    """Expand feature class letters (e.g. "LQH") into elapid feature type names."""
    fc = str(fc).upper()
    unknown = [c for c in fc if c not in FEATURE_CLASSES]
    if not fc or unknown:
        raise ValueError(
            f"Invalid feature classes '{fc}'. Use a combination of {list(FEATURE_CLASSES)}."
        )
    return [FEATURE_CLASSES[c] for c in fc]


def _format_value(value: Any) -> str:
    if isinstance(value, (float, np.floating)):
        return f"{value:g}"
    return str(value)


def tune_label(settings: Dict[str, Any], arg_names: Sequence[str]) -> str:
    """Label for a combination of tuning settings, e.g. fc.LQ_rm.1"""
    return "_".join(f"{name}.{_format_value(settings[name])}" for name in arg_names)


def validate_settings(algorithm: str, settings: Dict[str, Any]) -> None:
    algorithm = Algorithm(algorithm)
    expected = TUNE_ARGS[algorithm]
    missing = [a for a in expected if a not in settings]
    unknown = [a for a in settings if a not in expected]
    if missing or unknown:
        raise ValueError(
            f"Tuning arguments for {algorithm.value} must be {expected}; "
            f"missing {missing}, unknown {unknown}"
        )
    if algorithm == Algorithm.MAXNET:
        parse_feature_classes(settings["fc"])
        if float(settings["rm"]) <= 0:
            raise ValueError("Regularization multiplier 'rm' must be > 0")
    elif algorithm == Algorithm.BIOCLIM and settings["tails"] not in BIOCLIM_TAILS:
        raise ValueError(f"'tails' must be one of {list(BIOCLIM_TAILS)}")
    elif algorithm == Algorithm.BOOSTED_REGRESSION_TREES:
        if not 0 < float(settings["bag_fraction"]) <= 1:
            raise ValueError("'bag_fraction' must be in (0, 1]")


def tune_grid(algorithm: str, tune_args: Dict[str, Any]) -> pd.DataFrame:
    """Expand tuning arguments into a table of every combination.

    Args:
        algorithm: Algorithm name
        tune_args: Mapping of tuning argument to a value or list of values

    Returns:
        DataFrame with one row per combination and a `tune_args` label column
    """
    algorithm = Algorithm(algorithm)
    arg_names = TUNE_ARGS[algorithm]
    values = {
        name: v if isinstance(v, (list, tuple)) else [v]
        for name, v in tune_args.items()
    }
    validate_settings(algorithm, {name: v[0] for name, v in values.items()})

    rows = []
    for combo in product(*(values[name] for name in arg_names)):
        settings = dict(zip(arg_names, combo))
        validate_settings(algorithm, settings)
        rows.append(settings)

    grid = pd.DataFrame(rows, columns=arg_names)
    grid["tune_args"] = [tune_label(r, arg_names) for r in rows]
    if grid["tune_args"].duplicated().any():
        raise ValueError("Tuning arguments contain duplicate values")
    logger.debug(f"Tuning grid for {algorithm.value}: {len(grid)} combinations")
    return grid


def _create_estimator(
    algorithm: Algorithm,
    settings: Dict[str, Any],
    clamp: bool,
    n_predictors: int,
    random_state: Optional[int],
) -> BaseEstimator:
    if algorithm == Algorithm.MAXNET:
        return ela.MaxentModel(
            feature_types=parse_feature_classes(settings["fc"]),
            beta_multiplier=float(settings["rm"]),
            clamp=clamp,
            transform="cloglog",
            n_cpus=1,
        )
    if algorithm == Algorithm.RANDOM_FOREST:
        mtry = int(settings["mtry"])
        if mtry > n_predictors:
            logger.warning(f"mtry={mtry} exceeds the {n_predictors} predictors; using {n_predictors}")
            mtry = n_predictors
        return RandomForestClassifier(
            n_estimators=int(settings["ntree"]),
            max_features=mtry,
            random_state=random_state,
        )
    if algorithm == Algorithm.BOOSTED_REGRESSION_TREES:
        return GradientBoostingClassifier(
            n_estimators=MAX_BRT_TREES,
            max_depth=int(settings["tree_complexity"]),
            learning_rate=float(settings["learning_rate"]),
            subsample=float(settings["bag_fraction"]),
            n_iter_no_change=10,
            validation_fraction=0.1,
            random_state=random_state,
        )
    return ela.NicheEnvelopeModel(percentile_range=BIOCLIM_TAILS[settings["tails"]])


def build_model(
    algorithm: str,
    settings: Dict[str, Any],
    predictors: List[str],
    clamp: bool = True,
    random_state: Optional[int] = None,
) -> Pipeline:
    """Creates an unfitted model pipeline for one combination of tuning settings.

    The pipeline selects the predictor columns, then applies the estimator.
    """
    algorithm = Algorithm(algorithm)
    validate_settings(algorithm, settings)
    estimator = _create_estimator(algorithm, settings, clamp, len(predictors), random_state)
    return Pipeline([
        ("feature_selection", FeatureSubsetter(feature_names=list(predictors))),
        ("model", estimator),
    ])


def predict_suitability(model: BaseEstimator, X: pd.DataFrame) -> np.ndarray:
    """Predicted suitability (probability of the presence class)."""
    if hasattr(model, "predict_proba"):
        return np.asarray(model.predict_proba(X))[:, 1]
    return np.asarray(model.predict(X), dtype=float).ravel()


def fitted_estimator(model: BaseEstimator) -> BaseEstimator:
    """The estimator at the end of a model pipeline."""
    if hasattr(model, "steps"):
        return model.steps[-1][1]
    return model
