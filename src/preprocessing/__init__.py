"""
Preprocessing module for RNA-seq analysis.
"""

from .data_loader import (
    RNAseqDataLoader,
    SchemaMismatchError,
    deduplicate_index,
    drop_missing_genes
)
from .outliers import column_outlier_mask, remove_outlier_genes, outlier_summary
from .normalization import RNAseqNormalizer, compare_library_sizes
from .export import export_expression_table, load_expression_table

__all__ = [
    'RNAseqDataLoader',
    'SchemaMismatchError',
    'deduplicate_index',
    'drop_missing_genes',
    'column_outlier_mask',
    'remove_outlier_genes',
    'outlier_summary',
    'RNAseqNormalizer',
    'compare_library_sizes',
    'export_expression_table',
    'load_expression_table'
]
