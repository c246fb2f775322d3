"""
Plots for differential expression and enrichment results.
"""

from .plots import DEPlotter, pca_scores

__all__ = ['DEPlotter', 'pca_scores']
