"""Model tuning and evaluation across partitions."""

import logging
from concurrent.futures import ProcessPoolExecutor
from typing import Any, Dict, List, Optional, Sequence, Tuple

import geopandas as gpd
import numpy as np
import pandas as pd
from pydantic import BaseModel, ConfigDict
from sklearn.base import BaseEstimator
from tqdm import tqdm

from enmeval.data.loaders import predictor_columns
from enmeval.evaluation.metrics import (
    auc,
    boyce_index,
    corrected_sd,
    omission_rate_10p,
    omission_rate_mtp,
)
from enmeval.evaluation.partitions import Partition, PartitionMethod, partition
from enmeval.models.algorithms import (
    TUNE_ARGS,
    Algorithm,
    build_model,
    predict_suitability,
    tune_grid,
)

logger = logging.getLogger(__name__)

TRAIN_STATS = ["auc_train", "cbi_train"]
FOLD_STATS = ["auc_val", "auc_diff", "cbi_val", "or_mtp", "or_10p"]

DEFAULT_SELECTION = (("or_10p_avg", "min"), ("auc_val_avg", "max"))


class ENMEvaluation(BaseModel):
    """Results of tuning one algorithm over a grid of settings."""
    algorithm: Algorithm
    tune_settings: pd.DataFrame
    results: pd.DataFrame
    results_partitions: pd.DataFrame
    models: Dict[str, Any]
    partition_method: PartitionMethod
    partition_settings: Dict[str, Any] = {}
    other_settings: Dict[str, Any] = {}
    taxon_name: Optional[str] = None
    occs: gpd.GeoDataFrame
    occs_testing: Optional[gpd.GeoDataFrame] = None
    bg: gpd.GeoDataFrame
    occs_grp: np.ndarray
    bg_grp: np.ndarray
    predictor_names: List[str]

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def tune_arg_names(self) -> List[str]:
        return TUNE_ARGS[self.algorithm]

    def select(self, criteria: Sequence[Tuple[str, str]] = DEFAULT_SELECTION) -> pd.DataFrame:
        """Filter results sequentially, e.g. lowest or_10p_avg then highest auc_val_avg."""
        selected = self.results
        for column, direction in criteria:
            if column not in selected.columns:
                raise ValueError(f"Unknown results column '{column}'")
            if direction not in ("min", "max"):
                raise ValueError(f"Selection direction must be 'min' or 'max'; got '{direction}'")
            values = selected[column]
            if values.isna().all():
                continue
            target = values.min() if direction == "min" else values.max()
            selected = selected[values == target]
        return selected

    def model(self, tune_args: str) -> BaseEstimator:
        if tune_args not in self.models:
            raise KeyError(f"No model for tune settings '{tune_args}'")
        return self.models[tune_args]


def _fit(
    algorithm: Algorithm,
    settings: Dict[str, Any],
    predictors: List[str],
    occs: pd.DataFrame,
    bg: pd.DataFrame,
    clamp: bool,
    random_state: Optional[int],
) -> BaseEstimator:
    model = build_model(algorithm, settings, predictors, clamp=clamp, random_state=random_state)
    X = pd.concat([occs[predictors], bg[predictors]], ignore_index=True)
    y = np.concatenate([np.ones(len(occs), dtype=int), np.zeros(len(bg), dtype=int)])
    model.fit(X, y)
    return model


def evaluate_tune_setting(
    algorithm: Algorithm,
    settings: Dict[str, Any],
    label: str,
    occs: gpd.GeoDataFrame,
    bg: gpd.GeoDataFrame,
    part: Partition,
    predictors: List[str],
    occs_testing: Optional[gpd.GeoDataFrame] = None,
    clamp: bool = True,
    abs_auc_diff: bool = True,
    random_state: Optional[int] = None,
) -> Tuple[Dict[str, Any], List[Dict[str, Any]], BaseEstimator]:
    """Fit and evaluate one combination of tuning settings.

    Returns:
        Tuple of (results row, one row per fold, model fit on all data).
    """
    final_model = _fit(algorithm, settings, predictors, occs, bg, clamp, random_state)
    pred_occs = predict_suitability(final_model, occs[predictors])
    pred_bg = predict_suitability(final_model, bg[predictors])
    row: Dict[str, Any] = {**settings, "tune_args": label}
    row["auc_train"] = auc(pred_occs, pred_bg)
    row["cbi_train"] = boyce_index(np.concatenate([pred_bg, pred_occs]), pred_occs)

    fold_rows: List[Dict[str, Any]] = []
    if part.method == PartitionMethod.TESTING:
        pred_test = predict_suitability(final_model, occs_testing[predictors])  # type: ignore
        auc_val = auc(pred_test, pred_bg)
        auc_diff = row["auc_train"] - auc_val
        fold_rows.append({
            "tune_args": label,
            "fold": 1,
            "auc_val": auc_val,
            "auc_diff": abs(auc_diff) if abs_auc_diff else auc_diff,
            "cbi_val": boyce_index(np.concatenate([pred_bg, pred_test]), pred_test),
            "or_mtp": omission_rate_mtp(pred_occs, pred_test),
            "or_10p": omission_rate_10p(pred_occs, pred_test),
        })

    folds = [] if part.method == PartitionMethod.TESTING else part.folds
    for fold in folds:
        occs_val_mask = part.occs_grp == fold
        if part.bg_partitioned:
            bg_val_mask = part.bg_grp == fold
            bg_train, bg_val = bg[~bg_val_mask], bg[bg_val_mask]
        else:
            bg_train = bg_val = bg
        occs_train, occs_val = occs[~occs_val_mask], occs[occs_val_mask]

        if len(bg_train) == 0:
            raise ValueError(f"No background points left for training when holding out fold {fold}")
        if len(bg_val) == 0:
            logger.warning(f"No background points in fold {fold}; validation AUC is undefined")

        fold_model = _fit(algorithm, settings, predictors, occs_train, bg_train, clamp, random_state)
        p_train_occs = predict_suitability(fold_model, occs_train[predictors])
        p_train_bg = predict_suitability(fold_model, bg_train[predictors])
        p_val_occs = predict_suitability(fold_model, occs_val[predictors])
        p_val_bg = predict_suitability(fold_model, bg_val[predictors]) if len(bg_val) else np.array([])

        auc_val = auc(p_val_occs, p_val_bg)
        auc_diff = auc(p_train_occs, p_train_bg) - auc_val
        if part.method == PartitionMethod.JACKKNIFE:
            # A single held-out occurrence has no distribution to rank
            cbi_val = np.nan
        else:
            cbi_val = boyce_index(np.concatenate([p_val_bg, p_val_occs]), p_val_occs)
        fold_rows.append({
            "tune_args": label,
            "fold": fold,
            "auc_val": auc_val,
            "auc_diff": abs(auc_diff) if abs_auc_diff else auc_diff,
            "cbi_val": cbi_val,
            "or_mtp": omission_rate_mtp(p_train_occs, p_val_occs),
            "or_10p": omission_rate_10p(p_train_occs, p_val_occs),
        })

    fold_df = pd.DataFrame(fold_rows, columns=["tune_args", "fold", *FOLD_STATS])
    for stat in FOLD_STATS:
        values = fold_df[stat].astype(float)
        row[f"{stat}_avg"] = values.mean() if len(values) else np.nan
        if part.method == PartitionMethod.JACKKNIFE:
            row[f"{stat}_sd"] = corrected_sd(values.to_numpy())
        else:
            row[f"{stat}_sd"] = values.std() if len(values) else np.nan

    return row, fold_rows, final_model


def _check_inputs(
    occs: gpd.GeoDataFrame,
    bg: gpd.GeoDataFrame,
    predictors: List[str],
    occs_testing: Optional[gpd.GeoDataFrame],
) -> None:
    if len(occs) == 0:
        raise ValueError("No occurrence records supplied")
    if len(bg) == 0:
        raise ValueError("No background points supplied")
    if not predictors:
        raise ValueError("No predictor variables found in the occurrence data")
    datasets = {"occurrences": occs, "background": bg}
    if occs_testing is not None:
        datasets["testing occurrences"] = occs_testing
    for name, data in datasets.items():
        missing = [p for p in predictors if p not in data.columns]
        if missing:
            raise ValueError(f"Predictors {missing} missing from {name}")
        if data[predictors].isna().any().any():
            raise ValueError(f"Missing predictor values in {name}; remove or impute them first")


def enm_evaluate(
    occs: gpd.GeoDataFrame,
    bg: gpd.GeoDataFrame,
    algorithm: str,
    tune_args: Dict[str, Any],
    partitions: str,
    partition_settings: Optional[Dict[str, Any]] = None,
    occs_testing: Optional[gpd.GeoDataFrame] = None,
    user_grp: Optional[Dict[str, Sequence[int]]] = None,
    predictors: Optional[List[str]] = None,
    taxon_name: Optional[str] = None,
    clamp: bool = True,
    abs_auc_diff: bool = True,
    n_jobs: int = 1,
    random_state: Optional[int] = None,
    quiet: bool = False,
) -> ENMEvaluation:
    """Tune and evaluate a species distribution model.

    One model is fit per combination of tuning arguments. Each is evaluated on
    the full data (training statistics) and by holding out every partition
    group in turn (validation statistics), or against a separate testing
    dataset for the `testing` method.

    Args:
        occs: Occurrence points annotated with predictor values
        bg: Background points annotated with predictor values
        algorithm: Algorithm name (maxnet, randomForest, boostedRegressionTrees, bioclim)
        tune_args: Mapping of tuning argument to a value or list of values
        partitions: Partition method name
        partition_settings: Settings for the partition method
        occs_testing: Testing occurrences, required for the `testing` method
        user_grp: Group labels for the `user` method
        predictors: Predictor columns. Defaults to the numeric columns of `occs`.
        taxon_name: Name of the modelled taxon
        clamp: Clamp predictions to the training range (maxnet)
        abs_auc_diff: Report the absolute difference between training and validation AUC
        n_jobs: Number of worker processes for the tuning settings
        random_state: Seed for partitioning and stochastic algorithms
        quiet: Disable the progress bar

    Returns:
        ENMEvaluation with results per setting and per fold
    """
    algorithm = Algorithm(algorithm)
    partition_settings = dict(partition_settings or {})
    predictors = list(predictors) if predictors is not None else predictor_columns(occs)
    _check_inputs(occs, bg, predictors, occs_testing)
    if partitions == PartitionMethod.TESTING and occs_testing is None:
        raise ValueError("The testing partition method requires occs_testing")

    occs = occs.reset_index(drop=True)
    bg = bg.reset_index(drop=True)
    if occs_testing is not None:
        occs_testing = occs_testing.reset_index(drop=True)

    part = partition(
        partitions, occs, bg, random_state=random_state, user_grp=user_grp, **partition_settings
    )
    grid = tune_grid(algorithm, tune_args)
    arg_names = TUNE_ARGS[algorithm]
    logger.info(
        f"Tuning {algorithm.value} over {len(grid)} settings with {part.method.value} partitions "
        f"({len(occs)} occurrences, {len(bg)} background points, {len(predictors)} predictors)"
    )

    jobs = [
        dict(
            algorithm=algorithm,
            settings={name: r[name] for name in arg_names},
            label=r["tune_args"],
            occs=occs,
            bg=bg,
            part=part,
            predictors=predictors,
            occs_testing=occs_testing,
            clamp=clamp,
            abs_auc_diff=abs_auc_diff,
            random_state=random_state,
        )
        for r in grid.to_dict(orient="records")
    ]

    outputs = []
    if n_jobs == 1:
        for job in tqdm(jobs, desc="Tuning settings", disable=quiet):
            try:
                outputs.append(evaluate_tune_setting(**job))
            except Exception as e:
                logger.error(f"Error evaluating settings {job['label']}: {e}", exc_info=True)
                raise
    else:
        with ProcessPoolExecutor(max_workers=None if n_jobs < 1 else n_jobs) as executor:
            futures = [executor.submit(evaluate_tune_setting, **job) for job in jobs]
            for job, future in tqdm(zip(jobs, futures), total=len(futures), desc="Tuning settings", disable=quiet):
                try:
                    outputs.append(future.result())
                except Exception as e:
                    logger.error(f"Error evaluating settings {job['label']}: {e}", exc_info=True)
                    raise

    results = pd.DataFrame([row for row, _, _ in outputs])
    results_partitions = pd.DataFrame(
        [fold_row for _, fold_rows, _ in outputs for fold_row in fold_rows],
        columns=["tune_args", "fold", *FOLD_STATS],
    )
    models = {row["tune_args"]: model for row, _, model in outputs}

    logger.info(f"Finished tuning {len(results)} settings")
    return ENMEvaluation(
        algorithm=algorithm,
        tune_settings=grid,
        results=results,
        results_partitions=results_partitions,
        models=models,
        partition_method=part.method,
        partition_settings=part.settings,
        other_settings={"clamp": clamp, "pred_type": "cloglog", "abs_auc_diff": abs_auc_diff},
        taxon_name=taxon_name,
        occs=occs,
        occs_testing=occs_testing,
        bg=bg,
        occs_grp=part.occs_grp,
        bg_grp=part.bg_grp,
        predictor_names=predictors,
    )
