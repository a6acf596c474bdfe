"""MLflow logging of tuning and null-model runs."""

import logging
from typing import Optional

import mlflow
import numpy as np

from enmeval.evaluation.nulls import ENMNull
from enmeval.evaluation.tuning import ENMEvaluation

logger = logging.getLogger(__name__)


def _finite_metrics(values: dict) -> dict:
    # MLflow rejects NaN metrics on some backends
    return {k: float(v) for k, v in values.items() if v is not None and np.isfinite(v)}


def configure_tracking(tracking_uri: str, experiment_name: str = "enmeval") -> None:
    mlflow.set_tracking_uri(tracking_uri)
    mlflow.set_experiment(experiment_name)


def log_evaluation_to_mlflow(e: ENMEvaluation, run_name: Optional[str] = None) -> None:
    """Logs a tuning run with one nested run per tuning setting."""
    run_name = run_name or f"{e.taxon_name or 'taxon'}_{e.algorithm.value}"
    try:
        with mlflow.start_run(run_name=run_name):
            mlflow.set_tag("algorithm", e.algorithm.value)
            mlflow.set_tag("partition_method", e.partition_method.value)
            if e.taxon_name:
                mlflow.set_tag("taxon", e.taxon_name)
            mlflow.log_params({
                "n_presence": len(e.occs),
                "n_background": len(e.bg),
                "n_predictors": len(e.predictor_names),
                **{f"partition_{k}": v for k, v in e.partition_settings.items()},
            })
            mlflow.log_table(data=e.results, artifact_file="results.json")
            mlflow.log_table(data=e.results_partitions, artifact_file="results_partitions.json")

            metric_columns = [c for c in e.results.columns if c not in e.tune_arg_names and c != "tune_args"]
            for row in e.results.to_dict(orient="records"):
                with mlflow.start_run(run_name=row["tune_args"], nested=True):
                    mlflow.log_params({name: row[name] for name in e.tune_arg_names})
                    mlflow.log_metrics(_finite_metrics({c: row[c] for c in metric_columns}))
        logger.info(f"Logged tuning run to MLflow: {run_name}")
    except Exception as ex:
        logger.error(f"Error logging tuning run {run_name} to MLflow: {ex}", exc_info=True)


def log_nulls_to_mlflow(null: ENMNull, run_name: Optional[str] = None) -> None:
    """Logs null-model iterations and the empirical/null comparison."""
    run_name = run_name or f"nulls_{null.null_algorithm.value}_{null.tune_args}"
    try:
        with mlflow.start_run(run_name=run_name):
            mlflow.set_tag("algorithm", null.null_algorithm.value)
            mlflow.set_tag("partition_method", null.null_partition_method.value)
            mlflow.log_params({**null.null_mod_settings, "no_iter": null.null_no_iter})
            mlflow.log_table(data=null.null_results.reset_index(), artifact_file="null_results.json")
            summary = null.null_emp_results
            for row_name in ("zscore", "pvalue"):
                mlflow.log_metrics(_finite_metrics({f"{stat}_{row_name}": summary.loc[row_name, stat] for stat in summary.columns}))
        logger.info(f"Logged null-model run to MLflow: {run_name}")
    except Exception as ex:
        logger.error(f"Error logging null-model run {run_name} to MLflow: {ex}", exc_info=True)
