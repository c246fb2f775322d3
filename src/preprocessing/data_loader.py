"""
RNA-seq Data Loader and Initial Processing
==========================================
GSE173955: Hippocampal transcriptome of Alzheimer's disease vs. control donors

This module handles:
1. Loading the raw supplementary spreadsheet as text
2. Renaming positional columns to the semantic schema
3. Coercing sample expression columns to numeric
4. Building a gene-keyed expression matrix with unique row keys
"""

import pandas as pd
from pathlib import Path
from typing import List, Optional, Sequence
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class SchemaMismatchError(ValueError):
    """Raw column count does not match the expected schema."""


def deduplicate_index(keys: Sequence) -> pd.Index:
    """
    Make row keys pairwise distinct.

    Repeated keys get ``.1``, ``.2``, ... suffixes in order of appearance;
    the first occurrence keeps its name.
    """
    seen = set()
    counts = {}
    unique = []

    for key in keys:
        key = str(key)
        if key not in seen:
            seen.add(key)
            unique.append(key)
            continue

        n = counts.get(key, 0)
        candidate = key
        while candidate in seen:
            n += 1
            candidate = f"{key}.{n}"
        counts[key] = n
        seen.add(candidate)
        unique.append(candidate)

    return pd.Index(unique)


class RNAseqDataLoader:
    """Load and clean the GSE173955 supplementary expression table."""

    def __init__(
        self,
        raw_file: str,
        schema: List[str],
        sample_columns: List[str],
        id_column: str = 'gene_id',
        symbol_column: str = 'gene_symbol',
        header_rows: int = 1
    ):
        self.raw_file = Path(raw_file)
        self.schema = list(schema)
        self.sample_columns = list(sample_columns)
        self.id_column = id_column
        self.symbol_column = symbol_column
        self.header_rows = header_rows

        self.raw_df: Optional[pd.DataFrame] = None
        self.table_df: Optional[pd.DataFrame] = None

    def load_raw(self) -> pd.DataFrame:
        """Load the raw table with every cell as text."""
        logger.info(f"Loading raw table from {self.raw_file}")

        suffix = self.raw_file.suffix.lower()
        if suffix in ('.xlsx', '.xls'):
            self.raw_df = pd.read_excel(self.raw_file, header=None, dtype=str)
        else:
            sep = '\t' if suffix in ('.tsv', '.txt') else ','
            self.raw_df = pd.read_csv(self.raw_file, sep=sep, header=None, dtype=str)

        logger.info(f"Loaded {self.raw_df.shape[0]} rows x {self.raw_df.shape[1]} columns")
        return self.raw_df

    def normalize_columns(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Rename columns to the semantic schema and drop header artifact rows.

        Raises
        ------
        SchemaMismatchError
            If the number of columns differs from the schema length
        """
        if df.shape[1] != len(self.schema):
            raise SchemaMismatchError(
                f"Expected {len(self.schema)} columns, found {df.shape[1]}"
            )

        renamed = df.copy()
        renamed.columns = self.schema
        renamed = renamed.iloc[self.header_rows:].reset_index(drop=True)

        logger.info(f"Renamed {len(self.schema)} columns, dropped {self.header_rows} header rows")
        return renamed

    def coerce_numeric(
        self,
        df: pd.DataFrame,
        columns: Optional[List[str]] = None
    ) -> pd.DataFrame:
        """
        Convert text columns to numeric.

        Values that fail to parse become NaN; the number of such cells is
        logged but no error is raised.
        """
        columns = self.sample_columns if columns is None else columns
        coerced = df.copy()

        for col in columns:
            original = coerced[col]
            numeric = pd.to_numeric(original, errors='coerce')
            n_failed = int((numeric.isna() & original.notna()).sum())
            if n_failed:
                logger.warning(f"{col}: {n_failed} values could not be parsed as numbers")
            coerced[col] = numeric

        return coerced

    def expression_matrix(self, df: pd.DataFrame) -> pd.DataFrame:
        """Gene-keyed matrix of the sample columns."""
        symbols = df[self.symbol_column]
        if self.id_column in df.columns:
            symbols = symbols.where(
                symbols.notna() & (symbols.astype(str).str.strip() != ''),
                df[self.id_column]
            )

        matrix = df[self.sample_columns].copy()
        matrix.index = deduplicate_index(symbols)
        matrix.index.name = self.symbol_column

        n_dup = int(symbols.duplicated().sum())
        if n_dup:
            logger.info(f"Renamed {n_dup} duplicated gene symbols")

        return matrix

    def load(self) -> pd.DataFrame:
        """Load, rename, coerce and index the raw table."""
        raw = self.load_raw() if self.raw_df is None else self.raw_df
        self.table_df = self.coerce_numeric(self.normalize_columns(raw))
        matrix = self.expression_matrix(self.table_df)

        logger.info(f"Expression matrix: {matrix.shape[0]} genes x {matrix.shape[1]} samples")
        return matrix

    def annotation(self) -> pd.DataFrame:
        """Non-sample columns of the cleaned table, keyed like the matrix."""
        if self.table_df is None:
            self.load()

        other = [c for c in self.schema if c not in self.sample_columns]
        annot = self.table_df[other].copy()
        annot.index = self.expression_matrix(self.table_df).index
        return annot

    def missing_value_report(self, matrix: pd.DataFrame) -> pd.DataFrame:
        """Per-sample count of missing values."""
        return pd.DataFrame({
            'sample_id': matrix.columns,
            'missing_values': matrix.isna().sum(axis=0).values,
            'min_value': matrix.min(axis=0).values,
            'negative_values': (matrix < 0).sum(axis=0).values,
        })


def drop_missing_genes(matrix: pd.DataFrame) -> pd.DataFrame:
    """Remove genes with any missing sample value."""
    keep = matrix.notna().all(axis=1)
    n_removed = int((~keep).sum())
    if n_removed:
        logger.info(f"Dropped {n_removed} genes with missing values")
    return matrix.loc[keep]
