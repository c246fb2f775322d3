"""
Normalized expression table I/O.

The preprocessing output is a flat comma-delimited table: one gene symbol
column followed by one column per sample.
"""

import pandas as pd
from pathlib import Path
import logging

from .data_loader import deduplicate_index

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def export_expression_table(
    matrix: pd.DataFrame,
    path: str,
    gene_column: str = 'gene_symbol'
) -> Path:
    """Write a gene x sample matrix with full float precision."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    table = matrix.copy()
    table.index = table.index.astype(str)
    table.index.name = gene_column
    table.to_csv(path, float_format='%.17g')

    logger.info(f"Exported {matrix.shape[0]} genes x {matrix.shape[1]} samples to {path}")
    return path


def load_expression_table(path: str, gene_column: str = 'gene_symbol') -> pd.DataFrame:
    """
    Read an exported expression table.

    Gene symbols become unique row keys and sample columns are numeric.
    """
    path = Path(path)
    table = pd.read_csv(path, dtype={gene_column: str}, keep_default_na=False,
                        na_values=[''], float_precision='round_trip')

    if gene_column not in table.columns:
        raise ValueError(f"Column '{gene_column}' not found in {path}")

    matrix = table.drop(columns=[gene_column]).apply(pd.to_numeric, errors='coerce')
    matrix.index = deduplicate_index(table[gene_column])
    matrix.index.name = gene_column

    logger.info(f"Loaded {matrix.shape[0]} genes x {matrix.shape[1]} samples from {path}")
    return matrix
