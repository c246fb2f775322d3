"""
Differential Expression Analysis
================================

This module implements the two-group comparison used for GSE173955:
1. edgeR-like quasi-likelihood F-test on negative binomial GLMs
2. Benjamini-Hochberg correction over all tested genes
3. Partitioning into up- and down-regulated gene sets

Note: the QL test is a compact Python approximation of edgeR's
glmQLFit/glmQLFTest (common dispersion, fixed-df variance squeezing).
For publication-quality DE analysis, use edgeR directly.
"""

import pandas as pd
import numpy as np
from scipy import stats
import statsmodels.api as sm
from statsmodels.stats.multitest import multipletests
from typing import Dict, List, Sequence, Tuple
import logging
import warnings

from preprocessing.normalization import RNAseqNormalizer

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

LOGFC_PRIOR_COUNT = 0.125


def adjust_pvalues(pvalues: Sequence[float], method: str = 'fdr_bh') -> np.ndarray:
    """
    Multiple testing correction over the full set of p-values.

    NaN p-values are excluded from the correction and stay NaN.
    """
    pvalues = np.asarray(pvalues, dtype=float)
    adjusted = np.full_like(pvalues, np.nan)

    tested = ~np.isnan(pvalues)
    if tested.any():
        _, padj, _, _ = multipletests(pvalues[tested], method=method)
        adjusted[tested] = padj

    return adjusted


class DEAnalysis:
    """Differential Expression Analysis."""

    def __init__(
        self,
        counts: pd.DataFrame,
        metadata: pd.DataFrame,
        condition_col: str = 'condition'
    ):
        """
        Initialize DE analysis.

        Parameters
        ----------
        counts : pd.DataFrame
            Count matrix (genes x samples); CPM values are accepted
        metadata : pd.DataFrame
            Sample metadata indexed by sample, with a condition column
        condition_col : str
            Column name for condition/group
        """
        missing = [s for s in counts.columns if s not in metadata.index]
        if missing:
            raise ValueError(f"No metadata for samples: {missing}")

        incomplete = counts.index[counts.isna().any(axis=1)].tolist()
        if incomplete:
            raise ValueError(
                f"{len(incomplete)} genes have missing values, e.g. {incomplete[:5]}"
            )

        # Keep the column order of the count matrix
        self.counts = counts
        self.metadata = metadata.loc[list(counts.columns)]
        self.condition_col = condition_col

        normalizer = RNAseqNormalizer(counts)
        normalizer.tmm_factors()
        self.lib_sizes = normalizer.effective_lib_sizes()
        self.log_cpm = normalizer.cpm(log=True)

        logger.info(f"Initialized DE analysis with {counts.shape[1]} samples, {counts.shape[0]} genes")

    def _group_mask(self, contrast: Tuple[str, str]) -> np.ndarray:
        numerator, denominator = contrast
        conditions = self.metadata[self.condition_col]

        for group in (numerator, denominator):
            if not (conditions == group).any():
                raise ValueError(f"No samples in group '{group}'")

        other = sorted(set(conditions) - {numerator, denominator})
        if other:
            raise ValueError(f"Groups outside the contrast: {other}")

        return (conditions == numerator).values

    def estimate_common_dispersion(
        self,
        group_mask: np.ndarray,
        min_mean: float = 1.0
    ) -> float:
        """
        Moment estimate of the common negative binomial dispersion.

        Uses within-group means and variances of library-normalized counts.
        """
        scale = self.lib_sizes.mean() / self.lib_sizes
        norm = self.counts.multiply(scale, axis=1)

        phis = []
        for mask in (group_mask, ~group_mask):
            if mask.sum() < 2:
                continue
            group = norm.loc[:, mask]
            mean = group.mean(axis=1)
            var = group.var(axis=1)
            ok = mean >= min_mean
            phis.append(((var[ok] - mean[ok]) / mean[ok] ** 2).values)

        if not phis or sum(len(p) for p in phis) == 0:
            logger.warning("Too few replicates to estimate dispersion, using 0.1")
            return 0.1

        phi = float(np.nanmean(np.concatenate(phis)))
        phi = float(np.clip(phi, 1e-4, 10.0))
        logger.info(f"Common dispersion: {phi:.4f} (BCV {np.sqrt(phi):.3f})")
        return phi

    def prior_logfc(
        self,
        group_mask: np.ndarray,
        prior_count: float = LOGFC_PRIOR_COUNT
    ) -> pd.Series:
        """
        log2 fold change of numerator over denominator group.

        As in edgeR, a prior count scaled by library size is added to every
        value before averaging normalized expression per group, so genes
        with no counts in one group keep a finite fold change.
        """
        lib = self.lib_sizes
        prior = prior_count * lib / lib.mean()
        expr = (self.counts + prior) / (lib + 2 * prior)

        num = expr.loc[:, group_mask].mean(axis=1)
        den = expr.loc[:, ~group_mask].mean(axis=1)
        return np.log2(num / den)

    def _silent_in_a_group(self, group_mask: np.ndarray) -> pd.Series:
        values = self.counts.values
        return pd.Series(
            (values[:, group_mask] <= 0).all(axis=1) | (values[:, ~group_mask] <= 0).all(axis=1),
            index=self.counts.index
        )

    def _fit_gene(
        self,
        y: np.ndarray,
        design: np.ndarray,
        offset: np.ndarray,
        family
    ):
        with warnings.catch_warnings():
            warnings.simplefilter('ignore')
            return sm.GLM(y, design, family=family, offset=offset).fit()

    def run_edger_ql_like(
        self,
        contrast: Tuple[str, str] = ('disease', 'control'),
        alpha: float = 0.05,
        prior_df: float = 4.0,
        fdr_method: str = 'fdr_bh'
    ) -> pd.DataFrame:
        """
        Run edgeR-like quasi-likelihood F-test.

        Parameters
        ----------
        contrast : Tuple[str, str]
            (numerator, denominator) for fold change calculation
        alpha : float
            Significance threshold for adjusted p-values (reporting only)
        prior_df : float
            Prior degrees of freedom for squeezing gene QL dispersions
            toward their median
        fdr_method : str
            Method passed to ``multipletests``

        Returns
        -------
        pd.DataFrame
            DE results (gene, logFC, logCPM, F, pvalue, padj) sorted by pvalue
        """
        logger.info(f"Running edgeR-like QL test: {contrast[0]} vs {contrast[1]}")

        group = self._group_mask(contrast).astype(float)
        dispersion = self.estimate_common_dispersion(group.astype(bool))
        family = sm.families.NegativeBinomial(alpha=dispersion)

        offset = np.log(self.lib_sizes.values)
        design_full = np.column_stack([np.ones_like(group), group])
        design_null = np.ones((len(group), 1))
        df_resid = len(group) - 2
        if df_resid <= 0:
            raise ValueError("Need more samples than coefficients for a QL test")

        records = []
        for gene, y in zip(self.counts.index, self.counts.values):
            y = y.astype(float)
            if not np.any(y > 0):
                # Nothing to test; reported as logFC 0, F 0, p 1
                records.append((gene, 0.0, np.nan, np.nan))
                continue

            full = self._fit_gene(y, design_full, offset, family)
            null = self._fit_gene(y, design_null, offset, family)

            lr = max(null.deviance - full.deviance, 0.0)
            s2 = full.deviance / df_resid
            records.append((gene, lr, s2, np.nan))

        results_df = pd.DataFrame(records, columns=['gene', 'LR', 's2', 'pvalue'])
        results_df['logFC'] = self.prior_logfc(group.astype(bool)).values
        results_df['logCPM'] = self.log_cpm.mean(axis=1).values

        silent = self._silent_in_a_group(group.astype(bool))
        if silent.any():
            logger.info(f"{int(silent.sum())} genes have zero counts in one group; "
                        f"logFC bounded by prior count {LOGFC_PRIOR_COUNT}")

        all_zero = (self.counts.values <= 0).all(axis=1)
        results_df = self._ql_ftest(results_df, df_resid, prior_df)
        results_df.loc[all_zero, ['logFC', 'F', 'pvalue']] = [0.0, 0.0, 1.0]

        results_df['padj'] = adjust_pvalues(results_df['pvalue'], method=fdr_method)
        results_df = results_df[['gene', 'logFC', 'logCPM', 'F', 'pvalue', 'padj']]
        results_df = results_df.sort_values('pvalue', kind='mergesort').reset_index(drop=True)

        logger.info(f"Found {(results_df['padj'] < alpha).sum()} significant genes (padj < {alpha})")
        return results_df

    @staticmethod
    def _ql_ftest(results_df: pd.DataFrame, df_resid: int, prior_df: float) -> pd.DataFrame:
        """F statistics from likelihood ratios and squeezed QL dispersions."""
        results_df = results_df.copy()
        s2 = results_df['s2']

        s2_prior = float(np.nanmedian(s2[s2 > 0])) if (s2 > 0).any() else 1.0
        df_total = df_resid + prior_df
        s2_post = (df_resid * s2 + prior_df * s2_prior) / df_total
        s2_post = s2_post.clip(lower=1e-8)

        results_df['F'] = results_df['LR'] / s2_post
        tested = results_df['F'].notna()
        results_df.loc[tested, 'pvalue'] = stats.f.sf(results_df.loc[tested, 'F'], 1, df_total)
        return results_df


def partition_by_direction(
    de_results: pd.DataFrame,
    threshold: float = 0.05,
    pvalue_column: str = 'padj',
    fc_column: str = 'logFC',
    log2fc_threshold: float = 0.0,
    gene_column: str = 'gene'
) -> Tuple[List[str], List[str]]:
    """
    Split significant genes by the sign of their fold change.

    Returns
    -------
    Tuple[List[str], List[str]]
        Up- and down-regulated genes, ordered by p-value. The two lists
        never share a gene; genes failing the p-value cutoff are in neither.
    """
    for col in (pvalue_column, fc_column, gene_column):
        if col not in de_results.columns:
            raise ValueError(f"Column '{col}' not in DE results")

    lfc = max(log2fc_threshold, 0.0)
    ordered = de_results.sort_values(pvalue_column, kind='mergesort')
    significant = ordered[pvalue_column] < threshold

    up = ordered.loc[significant & (ordered[fc_column] > lfc), gene_column]
    down = ordered.loc[significant & (ordered[fc_column] < -lfc), gene_column]

    logger.info(f"Partitioned ({pvalue_column} < {threshold}): {len(up)} up, {len(down)} down")
    return up.tolist(), down.tolist()


def summarize(de_results: pd.DataFrame, alpha: float = 0.05) -> Dict[str, int]:
    """
    Counts of tested, significant, up and down genes.

    ``tested`` counts every gene with a p-value, including all-zero genes,
    which carry p = 1 and are part of the multiple-testing correction.
    """
    sig = de_results['padj'] < alpha
    return {
        'tested': int(de_results['pvalue'].notna().sum()),
        'significant': int(sig.sum()),
        'up': int((sig & (de_results['logFC'] > 0)).sum()),
        'down': int((sig & (de_results['logFC'] < 0)).sum())
    }


def get_top_genes(
    de_results: pd.DataFrame,
    n_top: int = 50,
    by: str = 'pvalue'
) -> pd.DataFrame:
    """Get top differentially expressed genes."""
    return de_results.nsmallest(n_top, by)


def filter_significant(
    de_results: pd.DataFrame,
    padj_threshold: float = 0.05,
    log2fc_threshold: float = 1.0
) -> pd.DataFrame:
    """Filter for significant genes based on padj and |logFC|."""
    mask = (
        (de_results['padj'] < padj_threshold) &
        (de_results['logFC'].abs() > log2fc_threshold)
    )

    return de_results[mask]
