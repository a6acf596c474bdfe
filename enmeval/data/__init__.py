"""
Data loading functionality for enmeval.
"""

from .loaders import (
    load_points,
    load_environmental_variables,
    annotate_points,
    predictor_columns,
    raster_band_names,
)

__all__ = [
    'load_points',
    'load_environmental_variables',
    'annotate_points',
    'predictor_columns',
    'raster_band_names',
]
