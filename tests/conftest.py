"""
conftest.py - Shared test fixtures for miloji

pytest reads this file before running any test. Every fixture defined
here can be requested by name from any test function.

The fake dataset is small enough to check every number by hand:

    12 cells × 6 genes, expression[g, c] = 12 * g + c

    nhood   member cells    size
    nh0     0, 1, 2, 3      4
    nh1     2, 3, 4, 5      4
    nh2     5, 6, 7         3
    nh3     9, 10, 11       3

    shared cells: nh0-nh1 = 2 (cells 2, 3), nh1-nh2 = 1 (cell 5),
    every other pair = 0. Cell 8 belongs to no nhood.
"""

import numpy as np
import pandas as pd
import pytest
from scipy import sparse

from miloji.data.core import miloji

# ===========================================================================
# Constants — the size of our fake dataset
# ===========================================================================

N_CELLS = 12
N_GENES = 6

NHOOD_MEMBERS = {
    'nh0': [0, 1, 2, 3],
    'nh1': [2, 3, 4, 5],
    'nh2': [5, 6, 7],
    'nh3': [9, 10, 11],
}


def make_indicator(members: dict, n_cells: int = N_CELLS) -> sparse.csr_matrix:
    """Build a (n_cells x n_nhoods) binary indicator from member lists."""
    rows, cols = [], []
    for j, cells in enumerate(members.values()):
        rows.extend(cells)
        cols.extend([j] * len(cells))
    return sparse.csr_matrix(
        (np.ones(len(rows)), (rows, cols)), shape=(n_cells, len(members))
    )


# ===========================================================================
# Fixture 1: raw pieces
# ===========================================================================


@pytest.fixture
def expression():
    """Dense (genes × cells) matrix with expression[g, c] = 12 * g + c."""
    return np.arange(N_GENES * N_CELLS, dtype=float).reshape(N_GENES, N_CELLS)


@pytest.fixture
def cell_ids():
    return [f"cell_{i}" for i in range(N_CELLS)]


@pytest.fixture
def gene_names():
    return [f"gene_{i}" for i in range(N_GENES)]


@pytest.fixture
def nhoods():
    """The 12 × 4 indicator matrix described at the top of this file."""
    return make_indicator(NHOOD_MEMBERS)


# ===========================================================================
# Fixture 2: miloji object WITHOUT neighbourhoods
# ===========================================================================


@pytest.fixture
def milo_basic(expression, cell_ids, gene_names):
    """
    The simplest miloji object: one 'logcounts' assay plus cell metadata.

    cell_meta columns:
      - sample:    first 6 cells 'A', last 6 'B'
      - cell_type: 'T' / 'B' labels
      - score:     0.0 .. 11.0
    """
    cell_meta = pd.DataFrame(
        {
            'sample': ['A'] * 6 + ['B'] * 6,
            'cell_type': ['T', 'T', 'T', 'B', 'B', 'B', 'T', 'T', 'B', 'B', 'B', 'B'],
            'score': np.arange(N_CELLS, dtype=float),
        },
        index=cell_ids,
    )

    return miloji(
        assays={'logcounts': expression},
        cell_ids=cell_ids,
        gene_names=gene_names,
        cell_metadata=cell_meta,
    )


# ===========================================================================
# Fixture 3: miloji object WITH neighbourhoods
# ===========================================================================


@pytest.fixture
def milo_nhoods(milo_basic, nhoods):
    """milo_basic with the four fake neighbourhoods attached."""
    return milo_basic.with_nhoods(
        nhoods,
        nhood_ids=list(NHOOD_MEMBERS.keys()),
        nhood_index=[0, 2, 5, 9],
    )


# ===========================================================================
# Fixture 4: sparse expression
# ===========================================================================


@pytest.fixture
def milo_sparse(cell_ids, gene_names, nhoods):
    """
    miloji whose assay is mostly zeros, so it is stored as a sparse matrix.

    Only gene_0 is non-zero: gene_0[c] = c + 1.
    """
    data = np.zeros((N_GENES, N_CELLS))
    data[0] = np.arange(1, N_CELLS + 1)

    return miloji(
        assays={'logcounts': data},
        cell_ids=cell_ids,
        gene_names=gene_names,
        nhoods=nhoods,
        nhood_ids=list(NHOOD_MEMBERS.keys()),
    )
