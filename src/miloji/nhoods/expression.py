"""
expression.py - Mean expression within neighbourhoods

Aggregates per-cell assay values into per-neighbourhood means with a
single product against the neighbourhood indicator matrix.
"""
from __future__ import annotations

import logging
from typing import Optional

import numpy as np
import pandas as pd
from scipy import sparse

from ..data.assay import AssayMatrix
from ..data.config import (
    EMPTY_NHOOD_POLICIES,
    EmptyNeighbourhoodError,
    MilojiConfig,
    MissingExpressionError,
    NoNeighbourhoodsError,
    ValidationError,
)
from ..data.core import miloji

logger = logging.getLogger(__name__)


def calc_nhood_expression(
    x,
    assay: Optional[str] = None,
    subset_row=None,
    exprs=None,
    empty_nhoods: Optional[str] = None,
) -> miloji:
    """
    Average expression within neighbourhoods.

    Computes the mean of each feature (optionally restricted to
    ``subset_row``) across the cells of each neighbourhood.

    Parameters
    ----------
    x : miloji or matrix
        A miloji object with nhoods computed, or an (n_cells x n_nhoods)
        binary indicator matrix (sparse, ndarray or DataFrame).
    assay : str, optional
        Assay to average. Defaults to config.default_assay.
    subset_row : bool mask, int positions, or feature names, optional
        Features to keep, in the order given.
    exprs : matrix or AssayMatrix, optional
        Features × cells expression. Required when ``x`` is a matrix.
    empty_nhoods : {'raise', 'nan'}, optional
        What to do with a neighbourhood without cells. Defaults to
        config.empty_nhoods.

    Returns
    -------
    miloji
        ``x`` with ``nhood_expression`` set (new object), or, for a matrix
        ``x``, a new miloji wrapping ``exprs`` with ``x`` as its nhoods.

    Examples
    --------
    >>> milo = calc_nhood_expression(milo, subset_row=['CD4', 'CD8A'])
    >>> milo.nhood_expression.shape
    (2, 120)
    """
    if isinstance(x, miloji):
        if not x.has_nhoods:
            raise NoNeighbourhoodsError("No neighbourhoods found - compute nhoods first")

        data = x.assay(assay)
        n_exprs = _calc_expression(
            nhoods=x.nhoods,
            data_set=data,
            nhood_ids=x.nhood_ids,
            subset_row=subset_row,
            empty_nhoods=empty_nhoods or x.config.empty_nhoods,
        )
        print(f"  ✓ Nhood expression: {n_exprs.shape[0]} features × {n_exprs.shape[1]} nhoods")
        return x.with_nhood_expression(n_exprs)

    if isinstance(x, (np.ndarray, pd.DataFrame)) or sparse.issparse(x):
        if exprs is None:
            raise MissingExpressionError(
                "No expression data found. Please specify a gene expression matrix to exprs"
            )

        config = MilojiConfig()
        assay = assay or config.default_assay
        x_milo = miloji(assays={assay: exprs}, nhoods=x, config=config)
        if not x_milo.has_nhoods:
            raise NoNeighbourhoodsError("No neighbourhoods found in the indicator matrix")
        n_exprs = _calc_expression(
            nhoods=x_milo.nhoods,
            data_set=x_milo.assay(assay),
            nhood_ids=x_milo.nhood_ids,
            subset_row=subset_row,
            empty_nhoods=empty_nhoods or x_milo.config.empty_nhoods,
        )
        print(f"  ✓ Nhood expression: {n_exprs.shape[0]} features × {n_exprs.shape[1]} nhoods")
        return x_milo.with_nhood_expression(n_exprs)

    raise TypeError(
        f"x must be a miloji object or an indicator matrix, got {type(x).__name__}"
    )


def _calc_expression(
    nhoods: sparse.spmatrix,
    data_set: AssayMatrix,
    nhood_ids: pd.Index,
    subset_row=None,
    empty_nhoods: str = 'raise',
) -> pd.DataFrame:
    """Mean of each assay row over the member cells of each nhood."""
    if empty_nhoods not in EMPTY_NHOOD_POLICIES:
        raise ValueError(
            f"Invalid empty_nhoods policy: {empty_nhoods!r}. Choose from {EMPTY_NHOOD_POLICIES}"
        )

    nhoods = sparse.csr_matrix(nhoods)
    if data_set.shape[1] != nhoods.shape[0]:
        raise ValidationError(
            f"Expression has {data_set.shape[1]} cells but nhoods has {nhoods.shape[0]} rows"
        )

    if subset_row is not None:
        data_set = data_set.subset_features(subset_row)

    sizes = np.asarray(nhoods.sum(axis=0)).ravel()
    empty = sizes == 0
    if empty.any():
        empty_ids = nhood_ids[empty].tolist()
        if empty_nhoods == 'raise':
            raise EmptyNeighbourhoodError(
                f"{int(empty.sum())} neighbourhoods have no cells: {empty_ids[:10]}"
            )
        logger.warning(f"{int(empty.sum())} neighbourhoods have no cells; their means are NaN")

    # (n_nhoods x n_cells) @ (n_cells x n_features) -> summed expression
    summed = nhoods.T @ data_set.data.T
    if sparse.issparse(summed):
        summed = summed.toarray()
    summed = np.asarray(summed, dtype=np.float64)

    with np.errstate(divide='ignore', invalid='ignore'):
        means = summed / sizes[:, None]

    return pd.DataFrame(means.T, index=data_set.feature_names, columns=nhood_ids)
