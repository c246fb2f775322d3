"""
Analysis Configuration
======================

Explicit run configuration for the GSE173955 preprocessing and
differential expression pipeline. Every statistical threshold used by the
pipeline is a named field here instead of a literal inside a step.
"""

import yaml
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Dict, List, Optional
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


GROUP_LABELS = ('disease', 'control')


@dataclass
class DownloadConfig:
    """Where the raw supplementary spreadsheet comes from."""
    accession: str = "GSE173955"
    filename: str = "GSE173955_processed_data.xlsx"
    base_url: str = "https://ftp.ncbi.nlm.nih.gov/geo/series"


@dataclass
class PreprocessingConfig:
    """
    Column schema and filtering thresholds for Pipeline A.

    Attributes:
        schema: Semantic column names, positionally matched to the raw file.
        sample_columns: Subset of ``schema`` holding per-sample expression.
        id_column: Gene identifier column.
        symbol_column: Gene symbol column used as the row key.
        header_rows: Leading non-data rows dropped after renaming.
        outlier_n_std: Standard-deviation multiplier of the outlier band.
        min_cpm: CPM a sample must exceed to count as expressing a gene.
        min_samples: Samples that must exceed ``min_cpm`` to keep a gene.
    """
    schema: List[str] = field(default_factory=list)
    sample_columns: List[str] = field(default_factory=list)
    id_column: str = "gene_id"
    symbol_column: str = "gene_symbol"
    header_rows: int = 1
    outlier_n_std: float = 3.0
    min_cpm: float = 1.0
    min_samples: int = 9


@dataclass
class DEConfig:
    """Differential expression and set partitioning settings."""
    contrast: List[str] = field(default_factory=lambda: list(GROUP_LABELS))
    sample_groups: Dict[str, str] = field(default_factory=dict)
    padj_threshold: float = 0.05
    pvalue_column: str = "padj"
    log2fc_threshold: float = 0.0
    fdr_method: str = "fdr_bh"


@dataclass
class EnrichmentConfig:
    """Over-representation analysis settings (cutoff supplied by the user)."""
    gene_sets: str = "GO_Biological_Process_2023"
    organism: str = "human"
    cutoff: float = 0.05


@dataclass
class PlotConfig:
    dpi: int = 300
    formats: List[str] = field(default_factory=lambda: ["png"])
    label_top_genes: int = 10
    heatmap_top_genes: int = 50
    top_terms: int = 15


@dataclass
class AnalysisConfig:
    """Complete pipeline configuration."""
    project_name: str = "GSE173955 differential expression"
    project_root: Path = field(default_factory=Path.cwd)
    raw_dir: str = "data/raw"
    processed_dir: str = "data/processed"
    results_dir: str = "results"
    figures_dir: str = "results/figures"
    download: DownloadConfig = field(default_factory=DownloadConfig)
    preprocessing: PreprocessingConfig = field(default_factory=PreprocessingConfig)
    de_analysis: DEConfig = field(default_factory=DEConfig)
    enrichment: EnrichmentConfig = field(default_factory=EnrichmentConfig)
    plots: PlotConfig = field(default_factory=PlotConfig)

    def __post_init__(self):
        self.project_root = Path(self.project_root)
        self.validate()

    def validate(self):
        """Check cross-field consistency of the configuration."""
        prep = self.preprocessing
        missing = [c for c in prep.sample_columns if c not in prep.schema]
        if missing:
            raise ValueError(f"Sample columns not in schema: {missing}")

        for col in (prep.id_column, prep.symbol_column):
            if prep.schema and col not in prep.schema:
                raise ValueError(f"Column '{col}' not in schema")

        if prep.outlier_n_std <= 0:
            raise ValueError("outlier_n_std must be positive")
        if prep.min_samples < 1:
            raise ValueError("min_samples must be at least 1")

        de = self.de_analysis
        if len(de.contrast) != 2:
            raise ValueError(f"Contrast must name two groups, got {de.contrast}")
        unknown = sorted(set(de.sample_groups.values()) - set(de.contrast))
        if unknown:
            raise ValueError(f"Sample groups outside the contrast: {unknown}")

        for name, value in (('padj_threshold', de.padj_threshold),
                            ('enrichment cutoff', self.enrichment.cutoff)):
            if not 0 < value <= 1:
                raise ValueError(f"{name} must be in (0, 1], got {value}")

    def path(self, name: str) -> Path:
        """Resolve one of the configured directories against the project root."""
        return self.project_root / getattr(self, name)

    @classmethod
    def from_dict(cls, config: dict, project_root: Optional[Path] = None) -> 'AnalysisConfig':
        config = dict(config or {})
        project = config.pop('project', {}) or {}
        paths = config.pop('paths', {}) or {}

        return cls(
            project_name=project.get('name', cls.project_name),
            project_root=project_root or Path.cwd(),
            download=DownloadConfig(**(config.get('download') or {})),
            preprocessing=PreprocessingConfig(**(config.get('preprocessing') or {})),
            de_analysis=DEConfig(**(config.get('de_analysis') or {})),
            enrichment=EnrichmentConfig(**(config.get('enrichment') or {})),
            plots=PlotConfig(**(config.get('plots') or {})),
            **paths
        )

    @classmethod
    def from_yaml(cls, config_path: str) -> 'AnalysisConfig':
        """
        Load configuration from a YAML file.

        The project root is the parent of the directory holding the file
        (``<root>/configs/config.yaml``).
        """
        config_path = Path(config_path)
        with open(config_path, 'r') as f:
            raw = yaml.safe_load(f)

        config = cls.from_dict(raw, project_root=config_path.resolve().parent.parent)
        logger.info(f"Loaded configuration from {config_path}")
        return config

    def to_dict(self) -> dict:
        d = asdict(self)
        d['project_root'] = str(self.project_root)
        return d
