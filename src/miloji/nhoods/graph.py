"""
graph.py - KNN graphs over cells and overlap graphs over neighbourhoods

Converts nearest-neighbour index lists into igraph graphs, and measures
how many cells each pair of neighbourhoods shares.
"""
from __future__ import annotations
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from miloji.data.core import miloji
    import igraph as ig

from dataclasses import dataclass

import numpy as np
import pandas as pd
from scipy import sparse

from ..data.config import NoNeighbourhoodsError, ValidationError
from ..data.utils import check_binary


def _import_igraph():
    try:
        import igraph as ig
    except ImportError as err:
        raise ImportError(
            "Graph conversion requires igraph. Install with: pip install igraph"
        ) from err
    return ig


def knn_to_graph(nn: np.ndarray, directed: bool = False) -> 'ig.Graph':
    """
    Convert a nearest-neighbour index matrix into a graph.

    Row i of ``nn`` lists the (0-based) indices of the neighbours of cell i.
    Every (i, neighbour) pair becomes an edge.

    Parameters
    ----------
    nn : np.ndarray
        (n_cells x k) integer neighbour indices.
    directed : bool
        If False, duplicate and reciprocal edges are merged and self-loops
        dropped, giving a simple undirected graph. If True, the raw
        directed multigraph is kept.

    Returns
    -------
    igraph.Graph
        Graph with one vertex per cell (more if ``nn`` references
        indices beyond n_cells).
    """
    ig = _import_igraph()

    nn = np.asarray(nn)
    if nn.ndim != 2:
        raise ValueError(f"nn must be a 2D (n_cells x k) matrix, got shape {nn.shape}")
    if nn.size and not np.issubdtype(nn.dtype, np.integer):
        if not np.all(np.mod(nn, 1) == 0):
            raise ValueError("nn must contain integer neighbour indices")
        nn = nn.astype(int)
    if nn.size and nn.min() < 0:
        raise ValueError("nn contains negative neighbour indices")

    n_cells, k = nn.shape
    start = np.repeat(np.arange(n_cells), k)
    end = nn.ravel()
    edges = np.column_stack([start, end])

    n_vertices = max(n_cells, int(end.max()) + 1) if end.size else n_cells

    g = ig.Graph(n=n_vertices, edges=edges.tolist(), directed=directed)
    if not directed:
        g.simplify(multiple=True, loops=True, combine_edges="first")

    return g


def add_knn_graph(x: 'miloji', nn: np.ndarray, directed: bool = False) -> 'miloji':
    """
    Store the graph of a neighbour index matrix in a miloji object.

    Returns
    -------
    miloji
        New object with ``graph`` set.
    """
    g = knn_to_graph(nn, directed=directed)
    print(f"  ✓ KNN graph: {g.vcount()} vertices, {g.ecount()} edges "
          f"({'directed' if directed else 'undirected'})")
    return x.with_graph(g)


@dataclass
class NhoodAdjacency:
    """
    Shared-cell counts between neighbourhoods.

    Attributes
    ----------
    adjacency : sparse.csr_matrix
        Symmetric (n_nhoods x n_nhoods) matrix. Entry (j, k) is the number
        of cells shared by nhoods j and k; entries below ``overlap`` are 0.
        The diagonal holds nhood sizes.
    nhood_ids : pd.Index
        Neighbourhood labels matching matrix rows/columns.
    overlap : int
        Minimum shared-cell count kept.
    """
    adjacency: sparse.csr_matrix
    nhood_ids: pd.Index
    overlap: int

    @property
    def n_nhoods(self) -> int:
        return self.adjacency.shape[0]

    @property
    def n_edges(self) -> int:
        """Undirected edge count (self-overlap excluded)."""
        return sparse.triu(self.adjacency, k=1).nnz

    @property
    def nhood_sizes(self) -> pd.Series:
        return pd.Series(self.adjacency.diagonal(), index=self.nhood_ids, name='nhood_size')

    def to_dataframe(self) -> pd.DataFrame:
        """Dense labelled copy (for display/export only)."""
        return pd.DataFrame(self.adjacency.toarray(), index=self.nhood_ids, columns=self.nhood_ids)

    def to_igraph(self) -> 'ig.Graph':
        """
        Weighted undirected graph of the overlaps.

        Edge attribute ``weight`` holds shared-cell counts, vertex
        attributes ``name`` and ``size`` the nhood label and size.
        """
        ig = _import_igraph()

        upper = sparse.triu(self.adjacency, k=1).tocoo()
        g = ig.Graph(
            n=self.n_nhoods,
            edges=list(zip(upper.row.tolist(), upper.col.tolist())),
            directed=False,
        )
        g.es['weight'] = upper.data.tolist()
        g.vs['name'] = [str(i) for i in self.nhood_ids]
        g.vs['size'] = self.adjacency.diagonal().tolist()
        return g

    def summary(self) -> dict:
        sizes = self.adjacency.diagonal()
        weights = sparse.triu(self.adjacency, k=1).data
        return {
            'n_nhoods': self.n_nhoods,
            'n_edges': self.n_edges,
            'overlap': self.overlap,
            'mean_nhood_size': sizes.mean() if len(sizes) > 0 else 0,
            'mean_shared_cells': weights.mean() if len(weights) > 0 else 0,
            'max_shared_cells': weights.max() if len(weights) > 0 else 0,
        }

    def __repr__(self) -> str:
        s = self.summary()
        return (
            f"NhoodAdjacency ({s['n_nhoods']} nhoods, {s['n_edges']} edges, "
            f"overlap>={s['overlap']})"
        )


def build_nhood_adjacency(
    nhoods: np.ndarray | sparse.spmatrix | pd.DataFrame,
    overlap: int = 1,
    nhood_ids: pd.Index | list | None = None,
) -> NhoodAdjacency:
    """
    Count the cells shared by every pair of neighbourhoods.

    Computes nhoods.T @ nhoods and zeroes entries below ``overlap``.

    Parameters
    ----------
    nhoods : matrix
        Binary indicator matrix (n_cells x n_nhoods). DataFrame columns
        are used as nhood labels.
    overlap : int
        Minimum number of shared cells for a pair to be kept. The default
        keeps any non-empty intersection.
    nhood_ids : list or Index, optional
        Nhood labels; defaults to DataFrame columns or 0..n_nhoods-1.

    Returns
    -------
    NhoodAdjacency
    """
    if isinstance(nhoods, pd.DataFrame):
        if nhood_ids is None:
            nhood_ids = nhoods.columns
        nhoods = nhoods.to_numpy()

    nhoods = sparse.csr_matrix(nhoods)
    if not check_binary(nhoods):
        raise ValidationError("nhoods must be a binary (0/1) indicator matrix")

    n_nhoods = nhoods.shape[1]
    nhood_ids = pd.Index(nhood_ids) if nhood_ids is not None else pd.RangeIndex(n_nhoods)
    if len(nhood_ids) != n_nhoods:
        raise ValidationError(f"nhood_ids ({len(nhood_ids)}) != n_nhoods ({n_nhoods})")

    nhoods = nhoods.astype(np.int64)
    intersect = (nhoods.T @ nhoods).tocsr()
    intersect.data[intersect.data < overlap] = 0
    intersect.eliminate_zeros()

    return NhoodAdjacency(adjacency=intersect, nhood_ids=nhood_ids, overlap=overlap)


def build_nhood_graph(x: 'miloji', overlap: int | None = None) -> 'miloji':
    """
    Build the neighbourhood overlap graph of a miloji object.

    Parameters
    ----------
    x : miloji
        miloji object with nhoods computed.
    overlap : int, optional
        Minimum shared cells per edge. Defaults to config.nhood_overlap.

    Returns
    -------
    miloji
        New object with ``nhood_adjacency`` and ``nhood_graph`` set.
    """
    if not x.has_nhoods:
        raise NoNeighbourhoodsError("No neighbourhoods found - compute nhoods first")

    overlap = x.config.nhood_overlap if overlap is None else overlap
    adj = build_nhood_adjacency(x.nhoods, overlap=overlap, nhood_ids=x.nhood_ids)
    g = adj.to_igraph()

    print(f"  ✓ Nhood graph: {adj.n_nhoods} nhoods, {adj.n_edges} edges "
          f"(overlap>={overlap})")

    return x.with_nhood_adjacency(adj.adjacency).with_nhood_graph(g)
