"""
Model construction for enmeval.
"""

from .algorithms import (
    Algorithm,
    TUNE_ARGS,
    tune_grid,
    build_model,
    predict_suitability,
    algorithm_version,
    algorithm_citation,
)
from .feature_subsetter import FeatureSubsetter

__all__ = [
    'Algorithm',
    'TUNE_ARGS',
    'tune_grid',
    'build_model',
    'predict_suitability',
    'algorithm_version',
    'algorithm_citation',
    'FeatureSubsetter',
]
