"""
Range model metadata for enmeval.
"""

from .rmm import (
    build_rmm,
    rmm_template,
    rmm_get,
    rmm_set,
    rmm_to_table,
    rmm_to_json,
    rmm_missing_fields,
)

__all__ = [
    'build_rmm',
    'rmm_template',
    'rmm_get',
    'rmm_set',
    'rmm_to_table',
    'rmm_to_json',
    'rmm_missing_fields',
]
