"""
Over-Representation Analysis
============================

Runs each DE gene set through Enrichr (via gseapy) against a GO
Biological Process library and returns a ranked table of terms.

The significance cutoff is a parameter of the run; it is never tuned
automatically.
"""

import gseapy as gp
import pandas as pd
from typing import Dict, List
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

RESULT_COLUMNS = ['term', 'pvalue', 'padj', 'gene_count', 'overlap', 'genes', 'combined_score']


def standardize_enrichr_results(results: pd.DataFrame) -> pd.DataFrame:
    """Rename Enrichr columns and add the supporting gene count."""
    if results is None or len(results) == 0:
        return pd.DataFrame(columns=RESULT_COLUMNS)

    results = results.rename(columns={
        'Term': 'term',
        'Adjusted P-value': 'padj',
        'P-value': 'pvalue',
        'Combined Score': 'combined_score',
        'Overlap': 'overlap',
        'Genes': 'genes'
    })

    results['gene_count'] = results['overlap'].astype(str).apply(
        lambda x: int(x.split('/')[0])
    )

    return results[RESULT_COLUMNS]


class EnrichmentRunner:
    """Enrichr ORA for lists of gene symbols."""

    def __init__(
        self,
        gene_sets: str = 'GO_Biological_Process_2023',
        organism: str = 'human',
        cutoff: float = 0.05
    ):
        if not 0 < cutoff <= 1:
            raise ValueError(f"cutoff must be in (0, 1], got {cutoff}")

        self.gene_sets = gene_sets
        self.organism = organism
        self.cutoff = cutoff

    def run(self, gene_list: List[str], label: str = 'genes') -> pd.DataFrame:
        """
        Run ORA for one gene set.

        Returns
        -------
        pd.DataFrame
            Terms with padj below the cutoff, ranked by padj
        """
        genes = sorted({str(g) for g in gene_list})
        if not genes:
            logger.warning(f"Empty gene set '{label}', skipping enrichment")
            return standardize_enrichr_results(None)

        logger.info(f"Running enrichment for '{label}' ({len(genes)} genes, {self.gene_sets})...")

        enr = gp.enrichr(
            gene_list=genes,
            gene_sets=self.gene_sets,
            organism=self.organism,
            outdir=None,  # Don't save files
            cutoff=self.cutoff,
            no_plot=True
        )

        results = standardize_enrichr_results(enr.results)
        results = results[results['padj'] < self.cutoff]
        results = results.sort_values('padj', kind='mergesort').reset_index(drop=True)

        if len(results) == 0:
            logger.warning(f"No terms with padj < {self.cutoff} for '{label}'")
        else:
            logger.info(f"'{label}': {len(results)} enriched terms (padj < {self.cutoff})")

        return results

    def run_sets(self, gene_sets: Dict[str, List[str]]) -> Dict[str, pd.DataFrame]:
        """Run ORA for each named gene set."""
        return {label: self.run(genes, label) for label, genes in gene_sets.items()}
