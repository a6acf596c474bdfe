"""Performance statistics for presence-background models."""

import logging
import math
from typing import Optional

import numpy as np
from scipy.stats import spearmanr
from sklearn.metrics import roc_auc_score

logger = logging.getLogger(__name__)


def auc(pred_occs: np.ndarray, pred_bg: np.ndarray) -> float:
    """Area under the ROC curve with occurrences as positives, background as negatives."""
    pred_occs = np.asarray(pred_occs, dtype=float)
    pred_bg = np.asarray(pred_bg, dtype=float)
    if pred_occs.size == 0 or pred_bg.size == 0:
        return np.nan
    y_true = np.concatenate([np.ones(pred_occs.size), np.zeros(pred_bg.size)])
    y_score = np.concatenate([pred_occs, pred_bg])
    return float(roc_auc_score(y_true, y_score))


def boyce_index(
    fit: np.ndarray,
    obs: np.ndarray,
    n_bins: int = 101,
    window_width: Optional[float] = None,
) -> float:
    """Continuous Boyce index using a moving window.

    For each window the ratio of the proportion of observed presences to the
    proportion of all predictions (`fit`) falling in the window is calculated.
    The index is the Spearman correlation between these ratios and the window
    midpoints.

    Args:
        fit: Predictions over the study area (background and presences)
        obs: Predictions at the observed presences
        n_bins: Number of moving windows
        window_width: Width of each window. Defaults to a tenth of the range of `fit`.

    Returns:
        Boyce index in [-1, 1], or NaN if it cannot be calculated.
    """
    fit = np.asarray(fit, dtype=float)
    obs = np.asarray(obs, dtype=float)
    fit = fit[np.isfinite(fit)]
    obs = obs[np.isfinite(obs)]
    if fit.size == 0 or obs.size == 0:
        return np.nan

    if window_width is None:
        window_width = (fit.max() - fit.min()) / 10
    lowest = min(fit.min(), obs.min())
    highest = max(fit.max(), obs.max())
    if window_width <= 0 or highest - lowest <= window_width:
        return np.nan

    starts = np.linspace(lowest, highest - window_width, n_bins)
    ends = starts + window_width

    # (n_bins, n) membership masks
    obs_in = (obs[None, :] >= starts[:, None]) & (obs[None, :] <= ends[:, None])
    fit_in = (fit[None, :] >= starts[:, None]) & (fit[None, :] <= ends[:, None])
    predicted = obs_in.sum(axis=1) / obs.size
    expected = fit_in.sum(axis=1) / fit.size

    with np.errstate(divide="ignore", invalid="ignore"):
        ratio = np.round(predicted / expected, 10)
    keep = np.isfinite(ratio)
    ratio = ratio[keep]
    midpoints = (starts + window_width / 2)[keep]
    if ratio.size < 2:
        return np.nan

    # Runs of identical ratios count once
    distinct = np.append(ratio[:-1] != ratio[1:], True)
    ratio = ratio[distinct]
    midpoints = midpoints[distinct]
    if ratio.size < 2 or np.all(ratio == ratio[0]):
        return np.nan

    correlation, _ = spearmanr(ratio, midpoints)
    return float(correlation)


def threshold_mtp(train_pred: np.ndarray) -> float:
    """Minimum training presence threshold."""
    return float(np.min(train_pred))


def threshold_10p(train_pred: np.ndarray) -> float:
    """Threshold that omits 10% of the training presences."""
    ordered = np.sort(np.asarray(train_pred, dtype=float))[::-1]
    n = ordered.size
    n90 = math.floor(n * 0.9) if n < 10 else math.ceil(n * 0.9)
    return float(ordered[max(n90, 1) - 1])


def omission_rate_mtp(train_pred: np.ndarray, val_pred: np.ndarray) -> float:
    """Proportion of validation presences below the minimum training presence prediction."""
    val_pred = np.asarray(val_pred, dtype=float)
    if val_pred.size == 0 or np.size(train_pred) == 0:
        return np.nan
    return float(np.mean(val_pred < threshold_mtp(train_pred)))


def omission_rate_10p(train_pred: np.ndarray, val_pred: np.ndarray) -> float:
    """Proportion of validation presences below the 10 percentile training presence threshold."""
    val_pred = np.asarray(val_pred, dtype=float)
    if val_pred.size == 0 or np.size(train_pred) == 0:
        return np.nan
    return float(np.mean(val_pred < threshold_10p(train_pred)))


def corrected_sd(values: np.ndarray) -> float:
    """Standard deviation corrected for the non-independence of jackknife folds."""
    values = np.asarray(values, dtype=float)
    values = values[~np.isnan(values)]
    n = values.size
    if n == 0:
        return np.nan
    return float(np.sqrt(((n - 1) / n) * np.sum((values - values.mean()) ** 2)))
