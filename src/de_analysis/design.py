"""
Sample group assignment.

Groups are given as an explicit sample -> group mapping and validated
against the expression matrix columns.
"""

import pandas as pd
from typing import Dict, Sequence
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def positional_groups(
    samples: Sequence[str],
    n_first: int,
    first: str = 'disease',
    second: str = 'control'
) -> Dict[str, str]:
    """
    Build a sample -> group mapping from column order.

    The first ``n_first`` samples get ``first``, the rest ``second``. Meant
    for writing the mapping into the configuration once.
    """
    samples = list(samples)
    if not 0 < n_first < len(samples):
        raise ValueError(f"n_first must split {len(samples)} samples, got {n_first}")

    return {s: (first if i < n_first else second) for i, s in enumerate(samples)}


def label_samples(
    columns: Sequence[str],
    sample_groups: Dict[str, str],
    condition_col: str = 'condition'
) -> pd.DataFrame:
    """
    Sample metadata aligned to the matrix columns.

    Raises
    ------
    ValueError
        If a column has no group or a mapped sample is not a column
    """
    columns = list(columns)

    unmapped = [c for c in columns if c not in sample_groups]
    if unmapped:
        raise ValueError(f"Samples without a group: {unmapped}")

    absent = [s for s in sample_groups if s not in columns]
    if absent:
        raise ValueError(f"Mapped samples not in expression matrix: {absent}")

    metadata = pd.DataFrame(
        {condition_col: [sample_groups[c] for c in columns]},
        index=pd.Index(columns, name='sample_id')
    )

    logger.info(f"Sample groups: {metadata[condition_col].value_counts().to_dict()}")
    return metadata
