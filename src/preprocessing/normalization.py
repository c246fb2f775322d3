"""
RNA-seq Normalization
=====================

Counts-per-million normalization with edgeR-style TMM factors and the
minimum-expression filter applied before export:

1. TMM (Trimmed Mean of M-values) normalization factors
2. CPM (Counts Per Million) on effective library sizes
3. CPM expression filter (keep genes above min_cpm in min_samples samples)
"""

import pandas as pd
import numpy as np
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class RNAseqNormalizer:
    """Normalize RNA-seq count data."""

    def __init__(self, counts_df: pd.DataFrame):
        """
        Initialize normalizer with counts DataFrame.

        Parameters
        ----------
        counts_df : pd.DataFrame
            Raw counts matrix (genes x samples), non-negative
        """
        if (counts_df < 0).any().any():
            raise ValueError("Counts must be non-negative")

        self.counts_df = counts_df.copy()
        self.lib_sizes = self.counts_df.sum(axis=0)
        self.norm_factors = pd.Series(1.0, index=self.counts_df.columns)

    def tmm_factors(
        self,
        logratio_trim: float = 0.3,
        sum_trim: float = 0.05
    ) -> pd.Series:
        """
        Calculate TMM normalization factors.

        Based on Robinson & Oshlack (2010) - edgeR method. Factors are
        rescaled to multiply to one.

        Returns
        -------
        pd.Series
            TMM normalization factors for each sample
        """
        lib_sizes = self.lib_sizes

        # Reference: sample whose upper quartile is closest to the mean upper quartile
        upper_q = (self.counts_df / lib_sizes).quantile(0.75)
        ref_idx = (upper_q - upper_q.mean()).abs().idxmin()
        ref_counts = self.counts_df[ref_idx]
        ref_lib = lib_sizes[ref_idx]

        factors = {}
        for sample in self.counts_df.columns:
            if sample == ref_idx:
                factors[sample] = 1.0
                continue

            obs_counts = self.counts_df[sample]
            obs_lib = lib_sizes[sample]

            # Filter: keep genes with counts > 0 in both samples
            keep = (obs_counts > 0) & (ref_counts > 0)
            obs = obs_counts[keep]
            ref = ref_counts[keep]

            if len(obs) == 0:
                factors[sample] = 1.0
                continue

            # M (log-ratio) and A (average intensity)
            M = np.log2(obs / obs_lib) - np.log2(ref / ref_lib)
            A = 0.5 * (np.log2(obs / obs_lib) + np.log2(ref / ref_lib))

            # Trim extremes of M and A
            lo_m, hi_m = np.percentile(M, [100 * logratio_trim, 100 * (1 - logratio_trim)])
            lo_a, hi_a = np.percentile(A, [100 * sum_trim, 100 * (1 - sum_trim)])
            keep_trim = (M >= lo_m) & (M <= hi_m) & (A >= lo_a) & (A <= hi_a)

            if keep_trim.sum() > 0:
                # Inverse of the asymptotic variance of M
                variance = ((obs_lib - obs) / obs_lib / obs +
                            (ref_lib - ref) / ref_lib / ref)
                weights = 1 / variance[keep_trim]
                tmm = np.average(M[keep_trim], weights=weights)
                factors[sample] = 2 ** tmm
            else:
                factors[sample] = 1.0

        factors = pd.Series(factors)[self.counts_df.columns]
        factors = factors / np.exp(np.log(factors).mean())

        self.norm_factors = factors
        logger.info(f"TMM factors range: {factors.min():.3f} - {factors.max():.3f}")
        return factors

    def effective_lib_sizes(self) -> pd.Series:
        return self.lib_sizes * self.norm_factors

    def cpm(self, log: bool = False, prior_count: float = 2) -> pd.DataFrame:
        """
        Calculate Counts Per Million (CPM).

        Parameters
        ----------
        log : bool
            If True, return log2 CPM with ``prior_count`` added to the counts
        prior_count : float
            Prior count added before log transformation

        Returns
        -------
        pd.DataFrame
            CPM normalized counts
        """
        lib = self.effective_lib_sizes()

        if log:
            # edgeR adds the prior scaled by library size to counts and library
            prior = prior_count * lib / lib.mean()
            cpm_df = np.log2((self.counts_df + prior) * 1e6 / (lib + 2 * prior))
        else:
            cpm_df = self.counts_df * 1e6 / lib

        logger.info("CPM normalization complete")
        return cpm_df

    def filter_by_cpm(self, min_cpm: float = 1.0, min_samples: int = 9) -> pd.DataFrame:
        """
        Keep genes expressed above ``min_cpm`` in at least ``min_samples`` samples.

        Returns
        -------
        pd.DataFrame
            CPM values of the retained genes
        """
        cpm_df = self.cpm()
        keep = (cpm_df > min_cpm).sum(axis=1) >= min_samples
        filtered = cpm_df.loc[keep]

        logger.info(f"CPM filter (>{min_cpm} CPM in >={min_samples} samples): "
                    f"{cpm_df.shape[0]} -> {filtered.shape[0]} genes "
                    f"(removed {int((~keep).sum())})")
        return filtered


def compare_library_sizes(counts_df: pd.DataFrame) -> pd.DataFrame:
    """
    Compare library sizes across samples.

    Parameters
    ----------
    counts_df : pd.DataFrame
        Raw counts matrix

    Returns
    -------
    pd.DataFrame
        Library size statistics
    """
    lib_sizes = counts_df.sum(axis=0)

    stats_df = pd.DataFrame({
        'sample_id': lib_sizes.index,
        'total_counts': lib_sizes.values,
        'detected_genes': (counts_df > 0).sum(axis=0).values,
        'mean_count': counts_df.mean(axis=0).values,
        'median_count': counts_df.median(axis=0).values
    })

    return stats_df
