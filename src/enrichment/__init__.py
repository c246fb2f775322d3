"""
Over-representation analysis of DE gene sets.
"""

from .ora import EnrichmentRunner, standardize_enrichr_results

__all__ = ['EnrichmentRunner', 'standardize_enrichr_results']
