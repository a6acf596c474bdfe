"""Null-model significance testing.

The empirical model is rebuilt many times on occurrences drawn at random
from the study area (the background by default). The null statistics give
the distribution of performance expected when occurrences carry no
information about the environment; empirical performance is compared with
it through z-scores and p-values from the normal distribution.
"""

import logging
from concurrent.futures import ProcessPoolExecutor
from typing import Any, Dict, List, Optional, Sequence

import geopandas as gpd
import numpy as np
import pandas as pd
from pydantic import BaseModel, ConfigDict
from scipy.stats import norm
from tqdm import tqdm

from enmeval.evaluation.partitions import Partition, PartitionMethod, partition
from enmeval.evaluation.tuning import ENMEvaluation, evaluate_tune_setting
from enmeval.models.algorithms import TUNE_ARGS, Algorithm, tune_label, validate_settings

logger = logging.getLogger(__name__)

NULL_STATS = ["auc_train", "cbi_train", "auc_val", "auc_diff", "cbi_val", "or_mtp", "or_10p"]

# Statistics where better-than-null means lower values
LOWER_TAIL_STATS = {"auc_diff", "or_mtp", "or_10p"}

SUMMARY_ROWS = ["emp_mean", "emp_sd", "null_mean", "null_sd", "zscore", "pvalue"]


class ENMNull(BaseModel):
    """Null-model results for one set of model settings."""
    null_algorithm: Algorithm
    null_mod_settings: Dict[str, Any]
    null_partition_method: PartitionMethod
    null_partition_settings: Dict[str, Any] = {}
    null_other_settings: Dict[str, Any] = {}
    null_no_iter: int
    null_results: pd.DataFrame
    null_results_partitions: pd.DataFrame
    null_emp_results: pd.DataFrame
    emp_occs: gpd.GeoDataFrame
    emp_occs_grp: np.ndarray
    emp_bg: gpd.GeoDataFrame
    emp_bg_grp: np.ndarray

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def tune_args(self) -> str:
        return tune_label(self.null_mod_settings, TUNE_ARGS[self.null_algorithm])

    def significant(self, alpha: float = 0.05) -> pd.Series:
        """Statistics whose empirical value differs from the null at level alpha."""
        return self.null_emp_results.loc["pvalue"] < alpha


def stat_columns(stat: str) -> Sequence[str]:
    """Results columns holding the mean and sd of a statistic."""
    if stat in ("auc_train", "cbi_train"):
        return stat, ""
    return f"{stat}_avg", f"{stat}_sd"


def summarize_nulls(
    emp_row: pd.Series,
    null_results: pd.DataFrame,
    stats: Sequence[str] = NULL_STATS,
) -> pd.DataFrame:
    """Compare empirical statistics with their null distributions.

    Args:
        emp_row: Empirical results row for the tested settings
        null_results: One results row per null iteration
        stats: Statistics to compare

    Returns:
        DataFrame indexed by emp_mean, emp_sd, null_mean, null_sd, zscore and
        pvalue with one column per statistic.
    """
    summary = pd.DataFrame(index=SUMMARY_ROWS, columns=list(stats), dtype=float)
    for stat in stats:
        mean_col, sd_col = stat_columns(stat)
        emp_mean = float(emp_row.get(mean_col, np.nan))
        emp_sd = float(emp_row.get(sd_col, np.nan)) if sd_col else np.nan
        null_values = null_results[mean_col].astype(float) if mean_col in null_results else pd.Series(dtype=float)
        null_mean = null_values.mean()
        null_sd = null_values.std()

        if null_sd == 0 or np.isnan(null_sd):
            if null_sd == 0:
                logger.warning(f"Null distribution of {stat} has zero variance; z-score is undefined")
            zscore = np.nan
            pvalue = np.nan
        else:
            zscore = (emp_mean - null_mean) / null_sd
            pvalue = norm.cdf(zscore) if stat in LOWER_TAIL_STATS else norm.sf(zscore)

        summary[stat] = [emp_mean, emp_sd, null_mean, null_sd, zscore, pvalue]
    return summary


def _null_partition(
    e: ENMEvaluation,
    null_occs: gpd.GeoDataFrame,
    rng: np.random.Generator,
    user_grp: Optional[Dict[str, Sequence[int]]],
) -> Partition:
    method = e.partition_method
    if method == PartitionMethod.USER:
        groups = user_grp or {"occs_grp": e.occs_grp, "bg_grp": e.bg_grp}
        return partition(method, null_occs, e.bg, user_grp=groups)
    # Checkerboard settings carry the empirical grid origin, so null and
    # empirical groups share cells
    return partition(method, null_occs, e.bg, random_state=rng, **e.partition_settings)


def run_null_iteration(
    iteration: int,
    e: ENMEvaluation,
    settings: Dict[str, Any],
    null_pool: gpd.GeoDataFrame,
    seed: np.random.SeedSequence,
    user_grp: Optional[Dict[str, Sequence[int]]] = None,
) -> tuple:
    """Draw null occurrences, partition them and evaluate one model."""
    rng = np.random.default_rng(seed)
    n_occs = len(e.occs)
    idx = rng.choice(len(null_pool), size=n_occs, replace=False)
    null_occs = null_pool.iloc[idx].reset_index(drop=True)

    part = _null_partition(e, null_occs, rng, user_grp)
    label = tune_label(settings, TUNE_ARGS[e.algorithm])
    row, fold_rows, _ = evaluate_tune_setting(
        algorithm=e.algorithm,
        settings=settings,
        label=label,
        occs=null_occs,
        bg=e.bg,
        part=part,
        predictors=e.predictor_names,
        occs_testing=e.occs_testing,
        clamp=e.other_settings.get("clamp", True),
        abs_auc_diff=e.other_settings.get("abs_auc_diff", True),
        random_state=int(rng.integers(2**31 - 1)),
    )
    row["iter"] = iteration
    for fold_row in fold_rows:
        fold_row["iter"] = iteration
    return row, fold_rows


def enm_nulls(
    e: ENMEvaluation,
    mod_settings: Dict[str, Any],
    no_iter: int,
    eval_stats: Optional[Sequence[str]] = None,
    null_pool: Optional[gpd.GeoDataFrame] = None,
    user_grp: Optional[Dict[str, Sequence[int]]] = None,
    n_jobs: int = 1,
    random_state: Optional[int] = None,
    quiet: bool = False,
) -> ENMNull:
    """Build null models and test the significance of empirical performance.

    Args:
        e: Empirical tuning results
        mod_settings: One value per tuning argument, matching a row of e.tune_settings
        no_iter: Number of null iterations
        eval_stats: Statistics to summarise. Defaults to all of NULL_STATS.
        null_pool: Points with predictor values to draw null occurrences from.
                   Defaults to the empirical background.
        user_grp: Group labels for null occurrences under user partitions.
                  Defaults to the empirical labels.
        n_jobs: Number of worker processes
        random_state: Seed; each iteration gets an independent child seed
        quiet: Disable the progress bar

    Returns:
        ENMNull with per-iteration null results and the empirical/null summary
    """
    if no_iter < 1:
        raise ValueError("no_iter must be >= 1")
    eval_stats = list(eval_stats) if eval_stats is not None else list(NULL_STATS)
    unknown = [s for s in eval_stats if s not in NULL_STATS]
    if unknown:
        raise ValueError(f"Unknown statistics {unknown}; use any of {NULL_STATS}")

    arg_names = TUNE_ARGS[e.algorithm]
    mod_settings = {k: (v[0] if isinstance(v, (list, tuple)) and len(v) == 1 else v) for k, v in mod_settings.items()}
    if any(isinstance(v, (list, tuple)) for v in mod_settings.values()):
        raise ValueError("mod_settings must hold a single value per tuning argument")
    validate_settings(e.algorithm, mod_settings)
    label = tune_label(mod_settings, arg_names)
    emp_rows = e.results[e.results["tune_args"] == label]
    if emp_rows.empty:
        raise ValueError(
            f"Settings {label} were not part of the empirical tuning; choose from {list(e.results['tune_args'])}"
        )
    mod_settings = {name: e.tune_settings.loc[emp_rows.index[0], name] for name in arg_names}

    if null_pool is None:
        null_pool = e.bg
    missing = [p for p in e.predictor_names if p not in null_pool.columns]
    if missing:
        raise ValueError(f"Predictors {missing} missing from the null pool")
    if len(null_pool) < len(e.occs):
        raise ValueError(
            f"The null pool has {len(null_pool)} points, fewer than the {len(e.occs)} occurrences"
        )
    if user_grp is not None and e.partition_method != PartitionMethod.USER:
        logger.warning("user_grp is ignored for non-user partitions")
        user_grp = None

    logger.info(
        f"Running {no_iter} null iterations for {e.algorithm.value} {label} "
        f"with {e.partition_method.value} partitions"
    )

    seeds = np.random.SeedSequence(random_state).spawn(no_iter)
    jobs = [
        dict(iteration=i + 1, e=e, settings=mod_settings, null_pool=null_pool, seed=seed, user_grp=user_grp)
        for i, seed in enumerate(seeds)
    ]

    outputs = []
    if n_jobs == 1:
        for job in tqdm(jobs, desc="Null iterations", disable=quiet):
            try:
                outputs.append(run_null_iteration(**job))
            except Exception as ex:
                logger.error(f"Error in null iteration {job['iteration']}: {ex}", exc_info=True)
                raise
    else:
        with ProcessPoolExecutor(max_workers=None if n_jobs < 1 else n_jobs) as executor:
            futures = [executor.submit(run_null_iteration, **job) for job in jobs]
            for job, future in tqdm(zip(jobs, futures), total=len(futures), desc="Null iterations", disable=quiet):
                try:
                    outputs.append(future.result())
                except Exception as ex:
                    logger.error(f"Error in null iteration {job['iteration']}: {ex}", exc_info=True)
                    raise

    null_results = pd.DataFrame([row for row, _ in outputs]).set_index("iter")
    null_results_partitions = pd.DataFrame([r for _, fold_rows in outputs for r in fold_rows])
    null_emp_results = summarize_nulls(emp_rows.iloc[0], null_results, eval_stats)

    logger.info(f"Null model summary for {label}:\n{null_emp_results.round(3).to_string()}")
    return ENMNull(
        null_algorithm=e.algorithm,
        null_mod_settings=mod_settings,
        null_partition_method=e.partition_method,
        null_partition_settings=e.partition_settings,
        null_other_settings=e.other_settings,
        null_no_iter=no_iter,
        null_results=null_results,
        null_results_partitions=null_results_partitions,
        null_emp_results=null_emp_results,
        emp_occs=e.occs,
        emp_occs_grp=e.occs_grp,
        emp_bg=e.bg,
        emp_bg_grp=e.bg_grp,
    )
