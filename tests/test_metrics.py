import math

import pytest
import numpy as np

from enmeval.evaluation.metrics import (
    auc,
    boyce_index,
    corrected_sd,
    omission_rate_10p,
    omission_rate_mtp,
    threshold_10p,
    threshold_mtp,
)


def test_auc_perfect_separation():
    assert auc(np.array([0.8, 0.9]), np.array([0.1, 0.2, 0.3])) == 1.0
    assert auc(np.array([0.1, 0.2]), np.array([0.8, 0.9])) == 0.0


def test_auc_empty_is_nan():
    assert np.isnan(auc(np.array([]), np.array([0.1, 0.2])))
    assert np.isnan(auc(np.array([0.1]), np.array([])))


def test_threshold_mtp():
    assert threshold_mtp(np.array([0.4, 0.2, 0.9])) == 0.2


def test_threshold_10p_large_sample():
    # 20 values: descending position ceil(18) -> 18th highest value
    train = np.arange(1, 21) / 20
    assert threshold_10p(train) == pytest.approx(0.15)
    assert omission_rate_10p(train, train) == pytest.approx(0.1)


def test_threshold_10p_small_sample():
    # Fewer than 10 values: floor(4.5) -> 4th highest value
    train = np.array([0.1, 0.2, 0.3, 0.4, 0.5])
    assert threshold_10p(train) == pytest.approx(0.2)


def test_omission_rate_mtp():
    assert omission_rate_mtp(np.array([0.2, 0.5, 0.9]), np.array([0.1, 0.3])) == 0.5
    assert omission_rate_mtp(np.array([0.2, 0.5]), np.array([0.2, 0.3])) == 0.0


def test_omission_rate_empty_validation():
    assert np.isnan(omission_rate_mtp(np.array([0.2]), np.array([])))
    assert np.isnan(omission_rate_10p(np.array([0.2]), np.array([])))


def test_corrected_sd():
    assert corrected_sd(np.array([1.0, 2.0, 3.0])) == pytest.approx(math.sqrt(4 / 3))
    assert corrected_sd(np.array([1.0, np.nan, 3.0])) == pytest.approx(1.0)
    assert np.isnan(corrected_sd(np.array([])))


def test_boyce_index_positive_when_presences_favour_high_values():
    fit = np.linspace(0, 1, 1000)
    obs = np.sqrt(np.linspace(0, 1, 500))
    assert boyce_index(fit, obs) > 0.8


def test_boyce_index_negative_when_presences_favour_low_values():
    fit = np.linspace(0, 1, 1000)
    obs = 1 - np.sqrt(np.linspace(0, 1, 500))
    assert boyce_index(fit, obs) < -0.8


def test_boyce_index_undefined_for_constant_predictions():
    assert np.isnan(boyce_index(np.full(100, 0.5), np.full(10, 0.5)))
    assert np.isnan(boyce_index(np.array([]), np.array([0.5])))
