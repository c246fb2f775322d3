"""
Tests for figure generation (Agg backend, files written to tmp_path).
"""
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from de_analysis.design import label_samples
from de_analysis.differential_expression import DEAnalysis
from visualization.plots import DEPlotter, pca_scores


@pytest.fixture
def analysis(count_matrix, sample_groups):
    metadata = label_samples(count_matrix.columns, sample_groups)
    results = DEAnalysis(count_matrix, metadata).run_edger_ql_like()
    return count_matrix, metadata, results


@pytest.fixture
def plotter(tmp_path):
    return DEPlotter(str(tmp_path / "figures"), dpi=50, formats=['png'])


class TestDEPlotter:

    def test_volcano(self, plotter, analysis):
        _, _, results = analysis
        files = plotter.volcano(results, padj_threshold=0.05, log2fc_threshold=1.0)
        assert files and Path(files[0]).exists()

    def test_volcano_without_results(self, plotter):
        assert plotter.volcano(pd.DataFrame()) is None

    def test_heatmap(self, plotter, analysis):
        counts, metadata, results = analysis
        files = plotter.heatmap(counts, results, metadata, n_top=20)
        assert files and Path(files[0]).name == "heatmap_top_genes.png"
        assert Path(files[0]).exists()

    def test_enrichment_barplot(self, plotter):
        enrichment = pd.DataFrame({
            'term': ['Synaptic Vesicle Cycle (GO:0099504)', 'Inflammatory Response (GO:0006954)'],
            'padj': [1e-4, 0.03],
            'gene_count': [8, 12],
        })
        files = plotter.enrichment_barplot(enrichment, 'GO BP: up', 'ora_up_barplot')
        assert files and Path(files[0]).exists()

    def test_enrichment_barplot_empty(self, plotter):
        empty = pd.DataFrame(columns=['term', 'padj', 'gene_count'])
        assert plotter.enrichment_barplot(empty, 'GO BP: down', 'ora_down_barplot') is None

    def test_sample_pca(self, plotter, analysis):
        counts, metadata, _ = analysis
        files = plotter.sample_pca(counts, metadata)
        assert files and Path(files[0]).exists()


def test_pca_scores_shape(count_matrix):
    scores, variance = pca_scores(np.log2(count_matrix + 1), n_components=3)
    assert scores.shape == (count_matrix.shape[1], 3)
    assert list(scores.index) == list(count_matrix.columns)
    assert np.all(np.diff(variance) <= 0)
