"""
Shared fixtures: synthetic 18-sample (9 disease / 9 control) data.
"""
import numpy as np
import pandas as pd
import pytest

DISEASE = [f"AD_{i}" for i in range(1, 10)]
CONTROL = [f"NC_{i}" for i in range(1, 10)]
SAMPLES = DISEASE + CONTROL

ANNOTATION = ['base_mean', 'log2_fold_change', 'p_value', 'fdr',
              'chromosome', 'start', 'end', 'strand', 'gene_symbol', 'description']
SCHEMA = ['gene_id'] + SAMPLES + ANNOTATION


@pytest.fixture
def sample_groups():
    groups = {s: 'disease' for s in DISEASE}
    groups.update({s: 'control' for s in CONTROL})
    return groups


@pytest.fixture
def count_matrix():
    """
    Negative binomial counts for 150 background genes plus STRONG1, a gene
    with a 10-fold disease increase and Poisson-only noise.
    """
    rng = np.random.default_rng(42)
    n_genes = 150
    means = rng.uniform(100, 1000, n_genes)

    # Gamma-Poisson with dispersion 0.05
    shape = 1 / 0.05
    lam = rng.gamma(shape, means[:, None] / shape, size=(n_genes, len(SAMPLES)))
    counts = rng.poisson(lam)

    strong = np.concatenate([
        rng.poisson(5000, len(DISEASE)),
        rng.poisson(500, len(CONTROL))
    ])

    df = pd.DataFrame(
        np.vstack([counts, strong]),
        index=[f"GENE{i}" for i in range(n_genes)] + ['STRONG1'],
        columns=SAMPLES
    )
    return df.astype(float)


def make_raw_table(n_genes: int = 120, seed: int = 0) -> pd.DataFrame:
    """
    Text table shaped like the supplementary spreadsheet: a duplicated
    header row followed by data rows, all cells as strings.

    GENE0-4 are up 2.5x in disease, GENE5-9 down 2.5x.
    """
    rng = np.random.default_rng(seed)
    base = rng.uniform(60, 300, n_genes)

    rows = [SCHEMA]
    for g in range(n_genes):
        disease_mean = base[g]
        if g < 5:
            disease_mean = 120 * 2.5
            base[g] = 120
        elif g < 10:
            disease_mean = 120 / 2.5
            base[g] = 120

        values = np.concatenate([
            rng.poisson(disease_mean, len(DISEASE)),
            rng.poisson(base[g], len(CONTROL))
        ])
        annotation = ['0', '0', '1', '1', 'chr1', '100', '200', '+',
                      f"GENE{g}", 'synthetic gene']
        rows.append([f"ENSG{g:011d}"] + [str(v) for v in values] + annotation)

    return pd.DataFrame(rows)


@pytest.fixture
def raw_table():
    return make_raw_table()
