"""
utils.py - Slot predicates and reduced-dimension setters for miloji
"""
from __future__ import annotations
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from miloji.data.core import miloji

from typing import Union
import numpy as np
import pandas as pd
from scipy import sparse

from .config import (
    Slot,
    SlotKind,
    ReducedDimTarget,
    UnsupportedAttributeKind,
    ReplacementNotImplementedError,
    ValidationError,
)


def _is_matrix_like(value) -> bool:
    return isinstance(value, (np.ndarray, pd.DataFrame)) or sparse.issparse(value)


def check_empty(x: 'miloji', slot: Union[Slot, str]) -> bool:
    """
    Check whether a slot of a miloji object holds no data.

    Parameters
    ----------
    x : miloji
        miloji object.
    slot : Slot or str
        Slot to inspect (member or attribute name, e.g. 'nhoods').

    Returns
    -------
    bool
        True if the slot is empty:
        - graph slots: no graph stored, or the first graph has no vertices
        - list slots: no entries
        - matrix slots: the row sums add up to exactly 0

    Raises
    ------
    UnsupportedAttributeKind
        Unknown slot, or slot content that does not match its kind.
    """
    slot = Slot.from_name(slot)
    content = x.get_slot(slot)

    if slot.kind is SlotKind.GRAPH:
        if not isinstance(content, list):
            raise UnsupportedAttributeKind(f"Slot '{slot.attr}' does not hold a graph list")
        return len(content) == 0 or content[0].vcount() == 0

    if slot.kind is SlotKind.LIST:
        if not isinstance(content, (list, tuple, dict)):
            raise UnsupportedAttributeKind(f"Slot '{slot.attr}' does not hold a collection")
        return len(content) == 0

    if slot.kind is SlotKind.MATRIX:
        if not _is_matrix_like(content):
            raise UnsupportedAttributeKind(
                f"Slot '{slot.attr}' holds {type(content).__name__}, not a matrix"
            )
        if isinstance(content, pd.DataFrame):
            content = content.to_numpy()
        row_sums = np.asarray(content.sum(axis=1)).ravel()
        return bool(row_sums.sum() == 0)

    raise UnsupportedAttributeKind(f"No emptiness rule for slot kind {slot.kind}")


def check_binary(x) -> bool:
    """
    Check whether every entry of a matrix is exactly 0 or 1.

    Counts zeros and ones; the matrix is binary iff together they account
    for every entry. Sparse input is never densified.
    """
    if isinstance(x, pd.DataFrame):
        x = x.to_numpy()

    n_rows, n_cols = x.shape
    n_comps = n_rows * n_cols

    if sparse.issparse(x):
        m = sparse.csr_matrix(x, copy=True)
        # duplicate entries at one position add up
        m.sum_duplicates()
        values = m.data
        # implicit zeros + explicitly stored zeros
        n_zeros = (n_comps - values.size) + np.count_nonzero(values == 0)
        n_ones = np.count_nonzero(values == 1)
    else:
        x = np.asarray(x)
        n_zeros = np.count_nonzero(x == 0)
        n_ones = np.count_nonzero(x == 1)

    return int(n_zeros) + int(n_ones) == n_comps


def set_reduced_dims(x: 'miloji',
                     value: np.ndarray,
                     target: Union[ReducedDimTarget, str] = ReducedDimTarget.NHOOD,
                     name: str | None = None) -> 'miloji':
    """
    Store a reduced-dimension matrix under a name.

    Parameters
    ----------
    x : miloji
        miloji object.
    value : np.ndarray
        Embedding with one row per nhood (NHOOD) or per cell (CELL).
    target : ReducedDimTarget or str
        Destination slot.
    name : str
        Key of the embedding in the destination slot.

    Returns
    -------
    miloji
        New object with the embedding stored; ``x`` is unchanged.
    """
    try:
        target = ReducedDimTarget(target)
    except ValueError as err:
        raise ReplacementNotImplementedError(
            f"Replacement method not implemented for {target!r}"
        ) from err

    if name is None:
        raise ValidationError("No reduced dimensionality slot provided")

    if target is ReducedDimTarget.NHOOD:
        return x.with_nhood_reduced_dim(name, value)
    if target is ReducedDimTarget.CELL:
        return x.with_reduced_dim(name, value)

    raise ReplacementNotImplementedError(f"Replacement method not implemented for {target!r}")
