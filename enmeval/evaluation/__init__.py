"""
Model tuning, evaluation and null-model testing for enmeval.
"""

from .metrics import auc, boyce_index, omission_rate_mtp, omission_rate_10p, corrected_sd
from .partitions import Partition, PartitionMethod, partition
from .tuning import ENMEvaluation, enm_evaluate
from .nulls import ENMNull, enm_nulls, summarize_nulls

__all__ = [
    'auc',
    'boyce_index',
    'omission_rate_mtp',
    'omission_rate_10p',
    'corrected_sd',
    'Partition',
    'PartitionMethod',
    'partition',
    'ENMEvaluation',
    'enm_evaluate',
    'ENMNull',
    'enm_nulls',
    'summarize_nulls',
]
