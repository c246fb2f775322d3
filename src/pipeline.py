"""
GSE173955 RNA-seq Analysis Pipeline
===================================

Main pipeline script that orchestrates:
1. Download of the GEO supplementary table
2. Preprocessing: column renaming, numeric coercion, outlier filter,
   CPM normalization and export
3. Differential expression (edgeR-like QL test) and BH correction
4. Over-representation analysis of up/down-regulated genes
5. Plots

Usage:
    python pipeline.py --config configs/config.yaml
    python pipeline.py --step de
"""

import argparse
import json
import pandas as pd
from pathlib import Path
import logging
from datetime import datetime

from analysis_settings import AnalysisConfig
from acquisition.geo_download import GEOSupplementDownloader
from preprocessing.data_loader import RNAseqDataLoader, drop_missing_genes
from preprocessing.outliers import remove_outlier_genes, outlier_summary
from preprocessing.normalization import RNAseqNormalizer, compare_library_sizes
from preprocessing.export import export_expression_table, load_expression_table
from de_analysis.design import label_samples
from de_analysis.differential_expression import (
    DEAnalysis,
    partition_by_direction,
    summarize,
    filter_significant
)
from enrichment.ora import EnrichmentRunner
from visualization.plots import DEPlotter

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

NORMALIZED_TABLE = "normalized_cpm.csv"
GENE_ANNOTATION = "gene_annotation.csv"


class RNAseqPipeline:
    """Preprocessing, DGE and ORA pipeline for GSE173955."""

    def __init__(self, config: AnalysisConfig):
        self.config = config

        self.raw_dir = config.path('raw_dir')
        self.processed_dir = config.path('processed_dir')
        self.results_dir = config.path('results_dir')
        self.figures_dir = config.path('figures_dir')
        for d in (self.processed_dir, self.results_dir):
            d.mkdir(parents=True, exist_ok=True)

        # Initialize containers
        self.raw_file = None
        self.counts_raw = None
        self.counts_filtered = None
        self.counts_normalized = None
        self.metadata = None
        self.de_results = None
        self.gene_sets = None
        self.enrichment = None

        logger.info(f"Initialized pipeline for: {config.project_name}")

    @classmethod
    def from_yaml(cls, config_path: str) -> 'RNAseqPipeline':
        return cls(AnalysisConfig.from_yaml(config_path))

    @property
    def normalized_table(self) -> Path:
        return self.processed_dir / NORMALIZED_TABLE

    def step1_download(self, force: bool = False) -> Path:
        """Fetch the supplementary table."""
        logger.info("=== Step 1: Download ===")

        dl = self.config.download
        downloader = GEOSupplementDownloader(
            accession=dl.accession,
            filename=dl.filename,
            raw_dir=str(self.raw_dir),
            base_url=dl.base_url
        )
        self.raw_file = downloader.download(force=force)
        return self.raw_file

    def step2_preprocess(self) -> pd.DataFrame:
        """Rename, coerce, remove outlier genes, CPM-filter and export."""
        logger.info("=== Step 2: Preprocessing ===")

        if self.raw_file is None:
            self.step1_download()

        prep = self.config.preprocessing
        loader = RNAseqDataLoader(
            str(self.raw_file),
            schema=prep.schema,
            sample_columns=prep.sample_columns,
            id_column=prep.id_column,
            symbol_column=prep.symbol_column,
            header_rows=prep.header_rows
        )
        self.counts_raw = loader.load()
        loader.missing_value_report(self.counts_raw).to_csv(
            self.results_dir / "missing_values.csv", index=False
        )

        self.counts_filtered, mask = remove_outlier_genes(self.counts_raw, n_std=prep.outlier_n_std)
        outlier_summary(mask).to_csv(self.results_dir / "outlier_summary.csv", index=False)
        self.counts_filtered = drop_missing_genes(self.counts_filtered)

        compare_library_sizes(self.counts_filtered).to_csv(
            self.results_dir / "library_sizes.csv", index=False
        )

        normalizer = RNAseqNormalizer(self.counts_filtered)
        self.counts_normalized = normalizer.filter_by_cpm(
            min_cpm=prep.min_cpm,
            min_samples=prep.min_samples
        )

        export_expression_table(self.counts_normalized, self.normalized_table,
                                gene_column=prep.symbol_column)
        loader.annotation().loc[self.counts_normalized.index].to_csv(
            self.processed_dir / GENE_ANNOTATION
        )
        return self.counts_normalized

    def step3_differential_expression(self) -> pd.DataFrame:
        """QL test, BH correction and up/down partition."""
        logger.info("=== Step 3: Differential Expression Analysis ===")

        de_cfg = self.config.de_analysis
        if self.counts_normalized is None:
            if self.normalized_table.exists():
                self.counts_normalized = load_expression_table(
                    self.normalized_table, gene_column=self.config.preprocessing.symbol_column
                )
                self.counts_normalized = drop_missing_genes(self.counts_normalized)
            else:
                self.step2_preprocess()

        self.metadata = label_samples(self.counts_normalized.columns, de_cfg.sample_groups)

        de = DEAnalysis(self.counts_normalized, self.metadata, condition_col='condition')
        self.de_results = de.run_edger_ql_like(
            contrast=tuple(de_cfg.contrast),
            alpha=de_cfg.padj_threshold,
            fdr_method=de_cfg.fdr_method
        )
        self.de_results.to_csv(self.results_dir / "de_results.csv", index=False)

        up, down = partition_by_direction(
            self.de_results,
            threshold=de_cfg.padj_threshold,
            pvalue_column=de_cfg.pvalue_column,
            log2fc_threshold=de_cfg.log2fc_threshold
        )
        filter_significant(
            self.de_results,
            padj_threshold=de_cfg.padj_threshold,
            log2fc_threshold=de_cfg.log2fc_threshold
        ).to_csv(self.results_dir / "significant_genes.csv", index=False)

        self.gene_sets = {'up': up, 'down': down}

        for label, genes in self.gene_sets.items():
            direction = 'upregulated' if label == 'up' else 'downregulated'
            self.de_results[self.de_results['gene'].isin(genes)].to_csv(
                self.results_dir / f"{direction}_genes.csv", index=False
            )

        logger.info(f"DE summary: {summarize(self.de_results, de_cfg.padj_threshold)}")
        return self.de_results

    def step4_enrichment(self) -> dict:
        """ORA of the up- and down-regulated gene sets."""
        logger.info("=== Step 4: Over-Representation Analysis ===")

        if self.gene_sets is None:
            self.step3_differential_expression()

        enr_cfg = self.config.enrichment
        runner = EnrichmentRunner(
            gene_sets=enr_cfg.gene_sets,
            organism=enr_cfg.organism,
            cutoff=enr_cfg.cutoff
        )
        self.enrichment = runner.run_sets(self.gene_sets)

        for label, df in self.enrichment.items():
            df.to_csv(self.results_dir / f"ora_{label}.csv", index=False)

        return self.enrichment

    def step5_plots(self) -> dict:
        """Volcano, heatmap, PCA and enrichment bar charts."""
        logger.info("=== Step 5: Plots ===")

        if self.de_results is None:
            self.step3_differential_expression()

        plot_cfg = self.config.plots
        de_cfg = self.config.de_analysis
        plotter = DEPlotter(str(self.figures_dir), dpi=plot_cfg.dpi, formats=plot_cfg.formats)

        figures = {
            'volcano': plotter.volcano(
                self.de_results,
                padj_threshold=de_cfg.padj_threshold,
                log2fc_threshold=de_cfg.log2fc_threshold,
                label_top=plot_cfg.label_top_genes
            ),
            'heatmap': plotter.heatmap(
                self.counts_normalized, self.de_results, self.metadata,
                n_top=plot_cfg.heatmap_top_genes
            ),
            'pca': plotter.sample_pca(self.counts_normalized, self.metadata)
        }

        for label, df in (self.enrichment or {}).items():
            figures[f'ora_{label}'] = plotter.enrichment_barplot(
                df,
                title=f'GO BP enrichment: {label}-regulated genes',
                name=f'ora_{label}_barplot',
                n_terms=plot_cfg.top_terms
            )

        return figures

    def run_full_pipeline(self):
        """Run the complete analysis pipeline."""
        logger.info("=" * 60)
        logger.info("Starting GSE173955 Analysis Pipeline")
        logger.info("=" * 60)

        start_time = datetime.now()

        self.step1_download()
        self.step2_preprocess()
        self.step3_differential_expression()
        self.step4_enrichment()
        self.step5_plots()

        duration = datetime.now() - start_time

        logger.info("=" * 60)
        logger.info(f"Pipeline completed in {duration}")
        logger.info(f"Results saved to: {self.results_dir}")
        logger.info("=" * 60)

        self._generate_summary_report()
        return self.de_results

    def _generate_summary_report(self):
        """Write a JSON summary of the run."""
        de_cfg = self.config.de_analysis
        summary = {
            'project': self.config.project_name,
            'date': datetime.now().isoformat(),
            'data': {
                'raw_genes': self.counts_raw.shape[0] if self.counts_raw is not None else None,
                'after_outlier_filter': self.counts_filtered.shape[0] if self.counts_filtered is not None else None,
                'after_cpm_filter': self.counts_normalized.shape[0] if self.counts_normalized is not None else None,
                'samples': self.counts_normalized.shape[1] if self.counts_normalized is not None else None
            },
            'de_analysis': summarize(self.de_results, de_cfg.padj_threshold) if self.de_results is not None else None,
            'enrichment': {
                label: len(df) for label, df in (self.enrichment or {}).items()
            },
            'config': self.config.to_dict()
        }

        with open(self.results_dir / "pipeline_summary.json", 'w') as f:
            json.dump(summary, f, indent=2, default=str)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description='GSE173955 RNA-seq DGE/ORA Pipeline')
    parser.add_argument(
        '--config',
        type=str,
        default='configs/config.yaml',
        help='Path to configuration file'
    )
    parser.add_argument(
        '--step',
        type=str,
        choices=['all', 'download', 'preprocess', 'de', 'enrichment', 'plots'],
        default='all',
        help='Pipeline step to run'
    )
    parser.add_argument(
        '--enrichment-cutoff',
        type=float,
        default=None,
        help='Override the ORA adjusted p-value cutoff'
    )

    args = parser.parse_args()

    config_path = Path(args.config)
    if not config_path.is_absolute() and not config_path.exists():
        config_path = Path(__file__).parent.parent / config_path

    config = AnalysisConfig.from_yaml(str(config_path))
    if args.enrichment_cutoff is not None:
        config.enrichment.cutoff = args.enrichment_cutoff
        config.validate()

    pipeline = RNAseqPipeline(config)

    if args.step == 'all':
        pipeline.run_full_pipeline()
    elif args.step == 'download':
        pipeline.step1_download()
    elif args.step == 'preprocess':
        pipeline.step2_preprocess()
    elif args.step == 'de':
        pipeline.step3_differential_expression()
    elif args.step == 'enrichment':
        pipeline.step4_enrichment()
    elif args.step == 'plots':
        pipeline.step4_enrichment()
        pipeline.step5_plots()


if __name__ == "__main__":
    main()
