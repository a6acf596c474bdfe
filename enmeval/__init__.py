"""
Tuning, evaluation and null-model testing of ecological niche models.
"""

from .__version__ import __version__
from .evaluation import ENMEvaluation, ENMNull, enm_evaluate, enm_nulls, partition
from .metadata import build_rmm

__all__ = [
    '__version__',
    'ENMEvaluation',
    'ENMNull',
    'enm_evaluate',
    'enm_nulls',
    'partition',
    'build_rmm',
]
