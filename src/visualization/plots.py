"""
DE Visualization
================

Figures produced after differential expression and ORA:
1. Volcano plot
2. Clustered heatmap of top genes (row z-scores)
3. Enrichment bar charts
4. Sample PCA
"""

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import seaborn as sns
import pandas as pd
import numpy as np
from sklearn.preprocessing import StandardScaler
from sklearn.decomposition import PCA
from pathlib import Path
from typing import List, Optional, Tuple
import logging

from de_analysis.differential_expression import get_top_genes

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

GROUP_COLORS = {'disease': '#E74C3C', 'control': '#3498DB'}


def pca_scores(
    expression: pd.DataFrame,
    n_components: int = 2
) -> Tuple[pd.DataFrame, np.ndarray]:
    """
    PCA of samples on standardized expression.

    Returns
    -------
    Tuple[pd.DataFrame, np.ndarray]
        PCA scores (samples x components) and explained variance ratios
    """
    # Samples as rows, genes as columns
    X = expression.T.values
    X_scaled = StandardScaler().fit_transform(X)

    n_components = min(n_components, *X.shape)
    pca = PCA(n_components=n_components)
    scores = pca.fit_transform(X_scaled)

    scores_df = pd.DataFrame(
        scores,
        index=expression.columns,
        columns=[f'PC{i+1}' for i in range(n_components)]
    )
    return scores_df, pca.explained_variance_ratio_


class DEPlotter:
    """Render and save DE/ORA figures."""

    def __init__(
        self,
        figures_dir: str,
        dpi: int = 300,
        formats: Optional[List[str]] = None,
        condition_col: str = 'condition'
    ):
        self.figures_dir = Path(figures_dir)
        self.figures_dir.mkdir(parents=True, exist_ok=True)
        self.dpi = dpi
        self.formats = formats or ['png']
        self.condition_col = condition_col

    def _save_figure(self, fig: plt.Figure, name: str) -> List[str]:
        saved_files = []
        for fmt in self.formats:
            filepath = self.figures_dir / f"{name}.{fmt}"
            fig.savefig(filepath, dpi=self.dpi, bbox_inches='tight',
                        facecolor='white', edgecolor='none')
            saved_files.append(str(filepath))
            logger.info(f"Saved {filepath.name}")
        plt.close(fig)
        return saved_files

    def volcano(
        self,
        de_results: pd.DataFrame,
        padj_threshold: float = 0.05,
        log2fc_threshold: float = 0.0,
        label_top: int = 10
    ) -> Optional[List[str]]:
        """Volcano plot of logFC against -log10 p-value."""
        if de_results is None or len(de_results) == 0:
            logger.warning("Skipping volcano plot - no DE results")
            return None

        df = de_results.dropna(subset=['logFC', 'pvalue']).copy()
        df['neg_log10_p'] = -np.log10(df['pvalue'].clip(lower=1e-300))

        sig = df['padj'] < padj_threshold
        df['significance'] = 'Not Significant'
        df.loc[sig & (df['logFC'] > log2fc_threshold), 'significance'] = 'Up'
        df.loc[sig & (df['logFC'] < -log2fc_threshold), 'significance'] = 'Down'

        colors = {'Not Significant': 'lightgray', 'Up': GROUP_COLORS['disease'],
                  'Down': GROUP_COLORS['control']}

        fig, ax = plt.subplots(figsize=(10, 8))
        for label, color in colors.items():
            subset = df[df['significance'] == label]
            ax.scatter(subset['logFC'], subset['neg_log10_p'],
                       c=color, alpha=0.6, s=12, label=f"{label} ({len(subset)})")

        if log2fc_threshold > 0:
            ax.axvline(x=log2fc_threshold, color='gray', linestyle='--', alpha=0.5)
            ax.axvline(x=-log2fc_threshold, color='gray', linestyle='--', alpha=0.5)

        for _, row in df[sig].nsmallest(label_top, 'pvalue').iterrows():
            ax.annotate(row['gene'], (row['logFC'], row['neg_log10_p']),
                        fontsize=8, ha='center', va='bottom')

        ax.set_xlabel('log2 Fold Change')
        ax.set_ylabel('-log10 P-value')
        ax.set_title('Volcano Plot: Differential Expression')
        ax.legend(loc='upper right')

        return self._save_figure(fig, "volcano_plot")

    def heatmap(
        self,
        expression: pd.DataFrame,
        de_results: pd.DataFrame,
        metadata: pd.DataFrame,
        n_top: int = 50
    ) -> Optional[List[str]]:
        """Hierarchically clustered heatmap of the top DE genes."""
        if de_results is None or len(de_results) == 0:
            logger.warning("Skipping heatmap - no DE results")
            return None

        top_genes = get_top_genes(de_results, n_top=n_top)['gene']
        top_genes = [g for g in top_genes if g in expression.index]
        if len(top_genes) < 2:
            logger.warning("Skipping heatmap - fewer than two genes to cluster")
            return None

        log_expr = np.log2(expression.loc[top_genes] + 1)
        zscore = log_expr.sub(log_expr.mean(axis=1), axis=0)
        zscore = zscore.div(log_expr.std(axis=1).replace(0, 1), axis=0)

        col_colors = metadata.loc[zscore.columns, self.condition_col].map(GROUP_COLORS)

        grid = sns.clustermap(
            zscore,
            cmap='RdBu_r',
            center=0,
            col_colors=col_colors,
            yticklabels=len(top_genes) <= 50,
            cbar_kws={'label': 'Z-score'},
            figsize=(12, 10)
        )
        grid.fig.suptitle(f'Top {len(top_genes)} DE genes', y=1.02)

        return self._save_figure(grid.fig, "heatmap_top_genes")

    def enrichment_barplot(
        self,
        enrichment: pd.DataFrame,
        title: str,
        name: str,
        n_terms: int = 15
    ) -> Optional[List[str]]:
        """Horizontal bars of -log10 adjusted p-value per term."""
        if enrichment is None or len(enrichment) == 0:
            logger.warning(f"Skipping {name} - no enriched terms")
            return None

        top = enrichment.nsmallest(n_terms, 'padj').copy()
        top['neg_log10_padj'] = -np.log10(top['padj'].clip(lower=1e-300))
        top['term_short'] = top['term'].apply(
            lambda x: x[:60] + '...' if len(str(x)) > 60 else x
        )

        fig, ax = plt.subplots(figsize=(10, max(3, 0.4 * len(top) + 1)))
        colors = sns.color_palette("viridis", len(top))
        ax.barh(range(len(top)), top['neg_log10_padj'], color=colors, alpha=0.8)

        ax.set_yticks(range(len(top)))
        ax.set_yticklabels(top['term_short'])
        ax.set_xlabel('-log10 Adjusted P-value')
        ax.set_title(title)

        for i, (_, row) in enumerate(top.iterrows()):
            ax.text(row['neg_log10_padj'] + 0.05, i, f"({row['gene_count']})",
                    va='center', fontsize=8)

        ax.invert_yaxis()
        plt.tight_layout()

        return self._save_figure(fig, name)

    def sample_pca(
        self,
        expression: pd.DataFrame,
        metadata: pd.DataFrame
    ) -> Optional[List[str]]:
        """PCA of log-expression, coloured by group."""
        if expression.shape[1] < 3 or expression.shape[0] < 2:
            logger.warning("Skipping PCA - need three samples and two genes")
            return None

        scores, variance = pca_scores(np.log2(expression + 1))
        groups = metadata.loc[scores.index, self.condition_col]

        fig, ax = plt.subplots(figsize=(8, 6))
        for group, idx in groups.groupby(groups).groups.items():
            ax.scatter(scores.loc[idx, 'PC1'], scores.loc[idx, 'PC2'],
                       c=GROUP_COLORS.get(group, 'gray'), s=60, label=group)
        for sample, row in scores.iterrows():
            ax.annotate(sample, (row['PC1'], row['PC2']), fontsize=7)

        ax.set_xlabel(f'PC1 ({variance[0]:.1%})')
        ax.set_ylabel(f'PC2 ({variance[1]:.1%})')
        ax.set_title('Sample PCA')
        ax.legend()

        return self._save_figure(fig, "sample_pca")
