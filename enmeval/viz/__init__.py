"""
Plotting for enmeval.
"""

from .plots import plot_tuning_results, plot_null_histograms

__all__ = [
    'plot_tuning_results',
    'plot_null_histograms',
]
