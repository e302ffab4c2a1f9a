"""
annotation.py - Summarise cell metadata per neighbourhood

Counts cells per sample and labels neighbourhoods by the cells they
contain, using the same indicator-matrix products as nhood expression.
"""
from __future__ import annotations
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from miloji.data.core import miloji

import numpy as np
import pandas as pd
from scipy import sparse

from ..data.config import NoNeighbourhoodsError


def _check_inputs(x: 'miloji', col: str) -> None:
    if not x.has_nhoods:
        raise NoNeighbourhoodsError("No neighbourhoods found - compute nhoods first")
    if col not in x.cell_meta.columns:
        raise ValueError(f"'{col}' not found in cell_meta")


def _onehot(labels: np.ndarray) -> tuple[sparse.csr_matrix, pd.Index]:
    """(n_cells x n_categories) indicator of categorical labels."""
    categories = pd.Categorical(labels)
    codes = categories.codes
    keep = codes >= 0  # NaN labels get code -1
    n_cells = len(codes)
    onehot = sparse.csr_matrix(
        (np.ones(keep.sum()), (np.arange(n_cells)[keep], codes[keep])),
        shape=(n_cells, len(categories.categories)),
    )
    return onehot, categories.categories


def count_nhoods(x: 'miloji', sample_col: str) -> pd.DataFrame:
    """
    Count cells from each sample in each neighbourhood.

    Parameters
    ----------
    x : miloji
        miloji object with nhoods computed.
    sample_col : str
        Column in x.cell_meta with sample labels.

    Returns
    -------
    pd.DataFrame
        (n_nhoods x n_samples) integer counts.
    """
    _check_inputs(x, sample_col)

    onehot, samples = _onehot(x.cell_meta[sample_col].values)
    counts = (x.nhoods.T @ onehot).toarray().astype(int)

    print(f"  ✓ Nhood counts: {counts.shape[0]} nhoods × {counts.shape[1]} samples")

    return pd.DataFrame(counts, index=x.nhood_ids, columns=samples)


def annotate_nhoods(x: 'miloji', anno_col: str) -> pd.DataFrame:
    """
    Label each neighbourhood by the composition of its cells.

    Parameters
    ----------
    x : miloji
        miloji object with nhoods computed.
    anno_col : str
        Column in x.cell_meta with categorical cell labels.

    Returns
    -------
    pd.DataFrame
        One column per label with the fraction of member cells carrying
        it, plus 'nhood_annotation' (most frequent label) and
        'nhood_annotation_frac' (its fraction).
    """
    _check_inputs(x, anno_col)

    labels = x.cell_meta[anno_col]
    if pd.api.types.is_numeric_dtype(labels) and not isinstance(labels.dtype, pd.CategoricalDtype):
        raise ValueError(
            f"'{anno_col}' is numeric - use annotate_nhoods_continuous for continuous values"
        )

    onehot, categories = _onehot(labels.values)
    counts = (x.nhoods.T @ onehot).toarray()
    totals = counts.sum(axis=1, keepdims=True)
    with np.errstate(divide='ignore', invalid='ignore'):
        frac = counts / totals

    result = pd.DataFrame(frac, index=x.nhood_ids, columns=categories)

    # nhoods without labelled cells get no annotation
    labelled = totals.ravel() > 0
    top = np.asarray(counts.argmax(axis=1)).ravel()
    result['nhood_annotation'] = np.where(labelled, np.asarray(categories, dtype=object)[top], None)
    result['nhood_annotation_frac'] = np.where(labelled, np.nan_to_num(frac).max(axis=1), np.nan)

    return result


def annotate_nhoods_continuous(x: 'miloji', anno_col: str) -> pd.Series:
    """
    Mean of a continuous cell annotation within each neighbourhood.

    Returns
    -------
    pd.Series
        Per-nhood mean, named 'nhood_<anno_col>'.
    """
    _check_inputs(x, anno_col)

    values = x.cell_meta[anno_col]
    if not pd.api.types.is_numeric_dtype(values):
        raise ValueError(
            f"'{anno_col}' is not numeric - use annotate_nhoods for categorical labels"
        )

    values = values.to_numpy(dtype=np.float64)
    sizes = np.asarray(x.nhoods.sum(axis=0)).ravel()
    with np.errstate(divide='ignore', invalid='ignore'):
        means = (x.nhoods.T @ values) / sizes

    return pd.Series(means, index=x.nhood_ids, name=f'nhood_{anno_col}')
