"""
Sample-wise Outlier Filtering
=============================

Flags cells lying outside mean +/- n_std * SD of their sample column and
removes every gene with at least one flagged cell. Statistics are computed
per sample, not per gene, to catch sample-level measurement artifacts.
"""

import pandas as pd
import numpy as np
from typing import Tuple
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def column_outlier_mask(df: pd.DataFrame, n_std: float = 3.0) -> pd.DataFrame:
    """
    Flag outlier cells column by column.

    Parameters
    ----------
    df : pd.DataFrame
        Numeric expression matrix (genes x samples)
    n_std : float
        Width of the accepted band in standard deviations

    Returns
    -------
    pd.DataFrame
        Boolean mask, True where ``|x - mean| > n_std * sd``. Missing cells
        and columns with zero or undefined SD are never flagged.
    """
    means = df.mean(axis=0, skipna=True)
    sds = df.std(axis=0, skipna=True)

    flat = sds.isna() | (sds == 0)
    if flat.any():
        logger.warning(f"Zero-variance samples, no outliers flagged: {sds.index[flat].tolist()}")

    deviation = (df - means).abs()
    mask = deviation.gt(n_std * sds, axis=1)
    mask.loc[:, flat.values] = False

    return mask.fillna(False).astype(bool)


def remove_outlier_genes(
    df: pd.DataFrame,
    n_std: float = 3.0
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Remove genes with an outlier value in any sample.

    Returns
    -------
    Tuple[pd.DataFrame, pd.DataFrame]
        Filtered matrix and the outlier mask of the input
    """
    mask = column_outlier_mask(df, n_std=n_std)
    keep = ~mask.any(axis=1)
    filtered = df.loc[keep]

    logger.info(f"Outlier filter ({n_std} SD): {df.shape[0]} -> {filtered.shape[0]} genes "
                f"(removed {int((~keep).sum())})")
    return filtered, mask


def outlier_summary(mask: pd.DataFrame) -> pd.DataFrame:
    """Number of flagged cells per sample."""
    counts = mask.sum(axis=0)
    return pd.DataFrame({
        'sample_id': counts.index,
        'outlier_cells': counts.values.astype(int),
        'outlier_pct': np.round(counts.values / max(len(mask), 1) * 100, 3)
    })
