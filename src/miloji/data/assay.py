"""
assay.py - Features × cells assay matrix with automatic sparse handling
"""

import numpy as np
import pandas as pd
from scipy import sparse


def resolve_feature_indices(selector, feature_names: pd.Index) -> np.ndarray:
    """
    Convert a feature selector to integer positions.

    Parameters
    ----------
    selector : bool mask, int positions, or feature names
        A logical mask (length n_features), integer positions, or
        feature names. Scalars are treated as a single selection.
    feature_names : pd.Index
        Feature names of the matrix being subset.

    Returns
    -------
    np.ndarray
        Integer positions, in the requested order.
    """
    n_features = len(feature_names)

    if isinstance(selector, (pd.Series, pd.Index)):
        selector = selector.values
    if np.isscalar(selector):
        selector = [selector]
    selector = np.asarray(selector)

    if selector.size == 0:
        return np.array([], dtype=int)

    # Logical mask
    if selector.dtype == bool:
        if len(selector) != n_features:
            raise ValueError(
                f"Boolean selector length ({len(selector)}) != n_features ({n_features})"
            )
        return np.flatnonzero(selector)

    # Integer positions
    if np.issubdtype(selector.dtype, np.integer):
        out_of_range = (selector >= n_features) | (selector < -n_features)
        if out_of_range.any():
            raise ValueError(
                f"Feature positions out of range for {n_features} features: "
                f"{selector[out_of_range].tolist()}"
            )
        return np.where(selector < 0, selector + n_features, selector)

    # Feature names
    indexer = feature_names.get_indexer(selector)
    missing = selector[indexer < 0]
    if len(missing) > 0:
        raise ValueError(f"Features not found: {missing.tolist()[:10]}")
    return indexer


class AssayMatrix:
    """
    Named assay (features × cells) with automatic sparse/dense handling.

    Features:
    - Automatic conversion to sparse when beneficial
    - Row subsetting by mask, position or feature name
    - Handles DataFrame, ndarray, or sparse matrix input
    """

    def __init__(
        self,
        data: np.ndarray | sparse.spmatrix | pd.DataFrame,
        feature_names: pd.Index | None = None,
        cell_ids: pd.Index | None = None,
        auto_sparse: bool = True,
        sparse_threshold: float = 0.5,
    ):
        """
        Initialize assay matrix.

        Parameters
        ----------
        data : np.ndarray, sparse matrix, or pd.DataFrame
            Assay values (features × cells). A DataFrame supplies
            feature names (index) and cell IDs (columns) unless given.
        feature_names : pd.Index, optional
            Feature names. Defaults to a RangeIndex.
        cell_ids : pd.Index, optional
            Cell identifiers. Defaults to a RangeIndex.
        auto_sparse : bool
            Automatically convert to sparse if beneficial
        sparse_threshold : float
            Sparsity threshold for conversion (0-1)
        """
        if isinstance(data, pd.DataFrame):
            if feature_names is None:
                feature_names = data.index
            if cell_ids is None:
                cell_ids = data.columns
            data = data.to_numpy()
        elif not sparse.issparse(data):
            data = np.asarray(data)

        if data.ndim != 2:
            raise ValueError(f"Assay data must be 2-dimensional, got shape {data.shape}")

        feature_names = pd.Index(feature_names) if feature_names is not None else pd.RangeIndex(data.shape[0])
        cell_ids = pd.Index(cell_ids) if cell_ids is not None else pd.RangeIndex(data.shape[1])

        if data.shape[0] != len(feature_names):
            raise ValueError(f"Data rows ({data.shape[0]}) != feature_names ({len(feature_names)})")
        if data.shape[1] != len(cell_ids):
            raise ValueError(f"Data cols ({data.shape[1]}) != cell_ids ({len(cell_ids)})")

        if auto_sparse and isinstance(data, np.ndarray) and data.size > 0:
            sparsity = 1 - np.count_nonzero(data) / data.size
            if sparsity > sparse_threshold:
                data = sparse.csr_matrix(data)
        elif sparse.issparse(data):
            data = sparse.csr_matrix(data)

        self._data = data
        self._feature_names = feature_names
        self._cell_ids = cell_ids
        self._is_sparse = sparse.issparse(data)

    @property
    def shape(self) -> tuple[int, int]:
        """Return (n_features, n_cells)."""
        return self._data.shape

    @property
    def is_sparse(self) -> bool:
        return self._is_sparse

    @property
    def data(self) -> np.ndarray | sparse.csr_matrix:
        """Underlying matrix (not copied)."""
        return self._data

    @property
    def feature_names(self) -> pd.Index:
        return self._feature_names

    @property
    def cell_ids(self) -> pd.Index:
        return self._cell_ids

    def get_dense(self) -> np.ndarray:
        """Get dense representation."""
        if self._is_sparse:
            return self._data.toarray()
        return self._data

    def get_sparse(self) -> sparse.csr_matrix:
        """Get sparse representation."""
        if not self._is_sparse:
            return sparse.csr_matrix(self._data)
        return self._data

    def subset_features(self, selector) -> "AssayMatrix":
        """
        Subset features (rows).

        Parameters
        ----------
        selector : bool mask, int positions, or feature names
            See resolve_feature_indices.

        Returns
        -------
        AssayMatrix
            New assay with the selected rows, in the requested order.
        """
        indices = resolve_feature_indices(selector, self._feature_names)
        return AssayMatrix(
            data=self._data[indices, :],
            feature_names=self._feature_names[indices],
            cell_ids=self._cell_ids,
            auto_sparse=False,  # Already in correct format
        )

    def subset_cells(self, indices: np.ndarray) -> "AssayMatrix":
        """Subset cells (columns) by integer indices."""
        return AssayMatrix(
            data=self._data[:, indices],
            feature_names=self._feature_names,
            cell_ids=self._cell_ids[indices],
            auto_sparse=False,
        )

    def to_dataframe(self) -> pd.DataFrame:
        """
        Convert to DataFrame (for display/export only).

        Warning: This creates a dense representation in memory.
        """
        return pd.DataFrame(self.get_dense(), index=self._feature_names, columns=self._cell_ids)

    def memory_usage_mb(self) -> float:
        """Estimate memory usage in MB."""
        if self._is_sparse:
            total_bytes = self._data.data.nbytes + self._data.indices.nbytes + self._data.indptr.nbytes
        else:
            total_bytes = self._data.nbytes

        return total_bytes / (1024 * 1024)

    def __repr__(self) -> str:
        kind = "sparse" if self._is_sparse else "dense"
        return f"AssayMatrix ({self.shape[0]} features × {self.shape[1]} cells, {kind})"
