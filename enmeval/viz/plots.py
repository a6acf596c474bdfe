"""Plots of tuning results and null distributions."""

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Union

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import seaborn as sns

from enmeval.evaluation.nulls import NULL_STATS, ENMNull, stat_columns
from enmeval.evaluation.tuning import ENMEvaluation

logger = logging.getLogger(__name__)

DEFAULT_TUNING_STATS = ["auc_val_avg", "auc_diff_avg", "cbi_val_avg", "or_10p_avg"]


def plot_tuning_results(
    e: ENMEvaluation,
    output_path: Union[str, Path],
    stats: Sequence[str] = DEFAULT_TUNING_STATS,
    dpi: int = 150,
) -> Path:
    """Plot each evaluation statistic against the tuning settings.

    Args:
        e: Tuning results
        output_path: Path to save the figure
        stats: Results columns to plot, one panel each
        dpi: Resolution of the saved figure

    Returns:
        Path to the saved figure
    """
    output_path = Path(output_path)
    stats = [s for s in stats if s in e.results.columns]
    if not stats:
        raise ValueError("None of the requested statistics are in the results")

    fig, axes = plt.subplots(len(stats), 1, figsize=(max(6, len(e.results) * 0.6), 3 * len(stats)), squeeze=False)
    for ax, stat in zip(axes[:, 0], stats):
        sns.pointplot(data=e.results, x="tune_args", y=stat, ax=ax, linestyle="none")
        sd_col = stat.replace("_avg", "_sd")
        if stat.endswith("_avg") and sd_col in e.results.columns:
            ax.errorbar(
                range(len(e.results)),
                e.results[stat],
                yerr=e.results[sd_col],
                fmt="none",
                ecolor="grey",
                capsize=3,
            )
        ax.set_xlabel("")
        ax.set_ylabel(stat)
        ax.tick_params(axis="x", rotation=90)
    fig.suptitle(f"{e.algorithm.value} tuning results ({e.partition_method.value} partitions)")
    fig.tight_layout()

    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, dpi=dpi, bbox_inches="tight")
    plt.close(fig)
    logger.info(f"Saved tuning plot to: {output_path}")
    return output_path


def plot_null_histograms(
    null: ENMNull,
    output_path: Union[str, Path],
    stats: Optional[List[str]] = None,
    dpi: int = 150,
) -> Path:
    """Histogram of each null statistic with the empirical value marked.

    Args:
        null: Null-model results
        output_path: Path to save the figure
        stats: Statistics to plot. Defaults to those in the null summary.
        dpi: Resolution of the saved figure

    Returns:
        Path to the saved figure
    """
    output_path = Path(output_path)
    stats = stats or [s for s in NULL_STATS if s in null.null_emp_results.columns]

    fig, axes = plt.subplots(1, len(stats), figsize=(3.5 * len(stats), 3.5), squeeze=False)
    for ax, stat in zip(axes[0], stats):
        mean_col, _ = stat_columns(stat)
        sns.histplot(null.null_results[mean_col].dropna(), ax=ax, color="grey")
        emp = null.null_emp_results.loc["emp_mean", stat]
        pvalue = null.null_emp_results.loc["pvalue", stat]
        ax.axvline(emp, color="red", linestyle="--")
        ax.set_title(f"{stat} (p = {pvalue:.3f})")
        ax.set_xlabel(stat)
    fig.suptitle(f"Null distributions for {null.tune_args} ({null.null_no_iter} iterations)")
    fig.tight_layout()

    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, dpi=dpi, bbox_inches="tight")
    plt.close(fig)
    logger.info(f"Saved null histograms to: {output_path}")
    return output_path
