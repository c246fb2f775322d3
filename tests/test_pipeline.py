"""
End-to-end pipeline run on a synthetic supplementary table.

The raw file is placed in the raw directory beforehand so no download
happens, and Enrichr is mocked.
"""
import json
from unittest.mock import MagicMock, patch

import pandas as pd
import pytest

from analysis_settings import AnalysisConfig
from pipeline import RNAseqPipeline

from conftest import SCHEMA, SAMPLES, make_raw_table


def fake_enrichr(gene_list, **kwargs):
    enr = MagicMock()
    enr.results = pd.DataFrame({
        'Term': ['Synaptic Signaling (GO:0099536)'],
        'Overlap': [f"{len(gene_list)}/200"],
        'P-value': [1e-5],
        'Adjusted P-value': [1e-3],
        'Combined Score': [50.0],
        'Genes': [';'.join(gene_list)],
    })
    return enr


@pytest.fixture
def config(tmp_path, sample_groups):
    raw_dir = tmp_path / "data" / "raw"
    raw_dir.mkdir(parents=True)
    make_raw_table().to_csv(raw_dir / "raw.csv", header=False, index=False)

    return AnalysisConfig.from_dict({
        'download': {'filename': 'raw.csv'},
        'preprocessing': {'schema': SCHEMA, 'sample_columns': SAMPLES, 'min_samples': 9},
        'de_analysis': {'sample_groups': sample_groups},
        'plots': {'dpi': 50},
    }, project_root=tmp_path)


class TestRNAseqPipeline:

    @patch("enrichment.ora.gp.enrichr", side_effect=fake_enrichr)
    def test_full_run_writes_outputs(self, enrichr, config):
        pipeline = RNAseqPipeline(config)
        de_results = pipeline.run_full_pipeline()

        results_dir = config.path('results_dir')
        for name in ("de_results.csv", "upregulated_genes.csv", "downregulated_genes.csv",
                     "ora_up.csv", "ora_down.csv", "outlier_summary.csv",
                     "significant_genes.csv", "pipeline_summary.json"):
            assert (results_dir / name).exists(), name

        assert pipeline.normalized_table.exists()
        annotation = pd.read_csv(config.path('processed_dir') / "gene_annotation.csv", index_col=0)
        assert list(annotation.index) == list(pipeline.counts_normalized.index)
        assert (config.path('figures_dir') / "volcano_plot.png").exists()

        # Planted 2.5-fold changes are recovered with the right sign
        up, down = pipeline.gene_sets['up'], pipeline.gene_sets['down']
        assert {f"GENE{i}" for i in range(5)} <= set(up)
        assert {f"GENE{i}" for i in range(5, 10)} <= set(down)
        assert not set(up) & set(down)

        assert de_results['padj'].notna().all()
        assert enrichr.call_count == 2

        with open(results_dir / "pipeline_summary.json") as f:
            summary = json.load(f)
        assert summary['data']['samples'] == 18
        assert summary['de_analysis']['up'] == len(up)

    def test_de_step_reads_exported_table(self, config):
        first = RNAseqPipeline(config)
        first.step2_preprocess()

        second = RNAseqPipeline(config)
        results = second.step3_differential_expression()

        assert second.counts_raw is None
        assert len(results) == len(first.counts_normalized)
        assert list(second.counts_normalized.columns) == SAMPLES

    def test_blank_cell_in_exported_table_drops_gene(self, config):
        RNAseqPipeline(config).step2_preprocess()

        pipeline = RNAseqPipeline(config)
        table = pd.read_csv(pipeline.normalized_table)
        dropped = table['gene_symbol'].iloc[20]
        table.loc[20, 'AD_4'] = None
        table.to_csv(pipeline.normalized_table, index=False)

        results = pipeline.step3_differential_expression()

        assert dropped not in set(results['gene'])
        assert len(results) == len(table) - 1

    def test_normalized_table_passes_expression_filter(self, config):
        pipeline = RNAseqPipeline(config)
        normalized = pipeline.step2_preprocess()

        assert list(normalized.columns) == SAMPLES
        assert ((normalized > config.preprocessing.min_cpm).sum(axis=1) >= 9).all()

        exported = pd.read_csv(pipeline.normalized_table)
        assert exported.columns[0] == 'gene_symbol'
