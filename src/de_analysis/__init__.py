"""
Differential Expression Analysis module.
"""

from .design import label_samples, positional_groups
from .differential_expression import (
    DEAnalysis,
    adjust_pvalues,
    partition_by_direction,
    summarize,
    get_top_genes,
    filter_significant
)

__all__ = [
    'DEAnalysis',
    'adjust_pvalues',
    'partition_by_direction',
    'summarize',
    'get_top_genes',
    'filter_significant',
    'label_samples',
    'positional_groups'
]
