"""
core.py - Main miloji class for KNN-neighbourhood analysis

The miloji class holds the assays of a single-cell experiment together
with the KNN graph, the neighbourhood indicator matrix and everything
derived from it. Updates never modify an object in place: every
``with_*`` method returns a new miloji that shares unchanged data.
"""
from __future__ import annotations
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import anndata
    import igraph as ig
import copy
import logging
from typing import Any, Dict, List, Optional, Union

import numpy as np
import pandas as pd
from scipy import sparse

from .assay import AssayMatrix
from .utils import check_binary
from .config import (
    MilojiConfig,
    Slot,
    ConsistencyError,
    ValidationError,
)

logger = logging.getLogger(__name__)

MatrixLike = Union[np.ndarray, sparse.spmatrix, pd.DataFrame]


def _placeholder_matrix() -> sparse.csr_matrix:
    """1×1 zero matrix marking a matrix slot that was never filled."""
    return sparse.csr_matrix((1, 1), dtype=np.float64)


def _is_placeholder(m) -> bool:
    return m.shape == (1, 1)


class miloji:
    """
    Single-cell data structure for KNN-neighbourhood analysis.

    Core Principles:
    - Master Index: cell IDs and feature names stored once
    - Efficient Storage: sparse indicator matrix, sparse/dense assays
    - Value Semantics: setters return new objects

    Attributes
    ----------
    _cell_index : pd.Index
        Master cell index
    _gene_index : pd.Index
        Master feature index
    _assays : Dict[str, AssayMatrix]
        Named assays (features × cells)
    _cell_meta : pd.DataFrame
        Cell metadata (aligned to _cell_index)
    _gene_meta : pd.DataFrame
        Feature metadata (aligned to _gene_index)
    _graph : List[igraph.Graph]
        KNN graph over cells (empty list if not built)
    _nhoods : sparse.csr_matrix
        Neighbourhood indicator matrix (cells × nhoods)
    _nhood_ids : pd.Index
        Neighbourhood labels (columns of _nhoods)
    _nhood_index : np.ndarray
        Positions of the index cell of each neighbourhood
    _nhood_expression : pd.DataFrame
        Mean expression per neighbourhood (features × nhoods)
    _nhood_adjacency : sparse.csr_matrix
        Shared-cell counts between neighbourhoods
    _nhood_graph : List[igraph.Graph]
        Neighbourhood overlap graph
    _reduced_dims : Dict[str, np.ndarray]
        Cell-level embeddings
    _nhood_reduced_dim : Dict[str, np.ndarray]
        Neighbourhood-level embeddings
    """

    def __init__(self,
                 assays: Dict[str, Union[MatrixLike, AssayMatrix]],
                 cell_ids: Optional[Union[List[str], pd.Index]] = None,
                 gene_names: Optional[Union[List[str], pd.Index]] = None,
                 cell_metadata: Optional[pd.DataFrame] = None,
                 gene_metadata: Optional[pd.DataFrame] = None,
                 graph: Optional['ig.Graph'] = None,
                 nhoods: Optional[MatrixLike] = None,
                 nhood_ids: Optional[Union[List, pd.Index]] = None,
                 nhood_index: Optional[np.ndarray] = None,
                 reduced_dims: Optional[Dict[str, np.ndarray]] = None,
                 config: Optional[MilojiConfig] = None):
        """
        Initialize miloji object.

        Parameters
        ----------
        assays : dict
            Assay name -> matrix (features × cells). All assays must have
            the same shape. DataFrames supply feature/cell names.
        cell_ids : list or Index, optional
            Cell identifiers. Taken from the first assay if omitted.
        gene_names : list or Index, optional
            Feature names. Taken from the first assay if omitted.
        cell_metadata : DataFrame, optional
            Cell annotations. Will be aligned to cell_ids.
        gene_metadata : DataFrame, optional
            Feature annotations. Will be aligned to gene_names.
        graph : igraph.Graph, optional
            KNN graph over cells.
        nhoods : matrix, optional
            Binary indicator matrix (cells × nhoods).
        nhood_ids : list or Index, optional
            Neighbourhood labels.
        nhood_index : array, optional
            Index cell position of each neighbourhood.
        reduced_dims : dict, optional
            Cell-level embeddings (n_cells rows each).
        config : MilojiConfig, optional
            Configuration object
        """
        self.config = config or MilojiConfig()

        if not assays:
            raise ValidationError("At least one assay is required")

        # Master indices from the first assay unless given
        _, first = next(iter(assays.items()))
        first = self._as_assay(first, gene_names, cell_ids)
        self._gene_index = pd.Index(
            gene_names if gene_names is not None else first.feature_names,
            name=self.config.gene_id_col,
        )
        self._cell_index = pd.Index(
            cell_ids if cell_ids is not None else first.cell_ids,
            name=self.config.cell_id_col,
        )

        self._assays = {}
        for name, data in assays.items():
            self._assays[name] = self._prepare_assay(name, data)

        self._cell_meta = self._align_metadata(cell_metadata, self._cell_index, self.config.cell_id_col)
        self._gene_meta = self._align_metadata(gene_metadata, self._gene_index, self.config.gene_id_col)

        self._graph = []
        if graph is not None:
            self._graph = [self._check_graph(graph)]
        self._nhood_graph = []

        self._nhoods = _placeholder_matrix()
        self._nhood_ids = pd.Index([])
        self._nhood_index = np.array([], dtype=int)
        if nhoods is not None:
            self._nhoods, self._nhood_ids, self._nhood_index = self._prepare_nhoods(
                nhoods, nhood_ids, nhood_index
            )

        self._nhood_expression = pd.DataFrame()
        self._nhood_adjacency = _placeholder_matrix()
        self._reduced_dims = {}
        for name, value in (reduced_dims or {}).items():
            self._reduced_dims[name] = self._check_rows(value, self.n_cells, f"reduced dim '{name}'")
        self._nhood_reduced_dim = {}

    # ========== Data Preparation Methods ==========

    def _as_assay(self, data, feature_names=None, cell_ids=None) -> AssayMatrix:
        if isinstance(data, AssayMatrix):
            return data
        return AssayMatrix(
            data=data,
            feature_names=feature_names,
            cell_ids=cell_ids,
            auto_sparse=True,
            sparse_threshold=self.config.auto_sparse_threshold,
        )

    def _prepare_assay(self, name: str, data) -> AssayMatrix:
        """Wrap an assay and check it against the master indices."""
        expected = (len(self._gene_index), len(self._cell_index))

        if isinstance(data, (AssayMatrix, pd.DataFrame)):
            assay = self._as_assay(data)
        else:
            if data.shape != expected:
                raise ConsistencyError(
                    f"Assay '{name}' shape {data.shape} != (n_features, n_cells) {expected}"
                )
            assay = self._as_assay(data, self._gene_index, self._cell_index)

        if assay.shape != expected:
            raise ConsistencyError(
                f"Assay '{name}' shape {assay.shape} != (n_features, n_cells) {expected}"
            )
        return assay

    def _align_metadata(self, metadata: Optional[pd.DataFrame],
                        index: pd.Index, id_col: str) -> pd.DataFrame:
        """Align metadata to a master index (missing rows become NaN)."""
        if metadata is None:
            return pd.DataFrame(index=index)

        if id_col in metadata.columns:
            metadata = metadata.set_index(id_col)

        aligned = metadata.reindex(index)

        n_missing = len(index) - aligned.index.isin(metadata.index).sum()
        if n_missing > 0:
            logger.warning(f"{n_missing} {id_col} entries missing metadata (filled with NaN)")

        return aligned

    def _prepare_nhoods(self, nhoods: MatrixLike, nhood_ids, nhood_index):
        if isinstance(nhoods, pd.DataFrame):
            if nhood_ids is None:
                nhood_ids = nhoods.columns
            nhoods = nhoods.to_numpy()

        nhoods = sparse.csr_matrix(nhoods, copy=True)
        if nhoods.shape[0] != self.n_cells:
            raise ValidationError(
                f"nhoods rows ({nhoods.shape[0]}) != n_cells ({self.n_cells})"
            )
        if not check_binary(nhoods):
            raise ValidationError("nhoods must be a binary (0/1) indicator matrix")

        n_nhoods = nhoods.shape[1]
        nhood_ids = pd.Index(nhood_ids) if nhood_ids is not None else pd.RangeIndex(n_nhoods)
        if len(nhood_ids) != n_nhoods:
            raise ValidationError(f"nhood_ids ({len(nhood_ids)}) != n_nhoods ({n_nhoods})")

        if nhood_index is None:
            nhood_index = np.array([], dtype=int)
        else:
            nhood_index = np.asarray(nhood_index, dtype=int)
            if len(nhood_index) != n_nhoods:
                raise ValidationError(
                    f"nhood_index ({len(nhood_index)}) != n_nhoods ({n_nhoods})"
                )

        return nhoods, nhood_ids, nhood_index

    def _check_graph(self, graph: 'ig.Graph') -> 'ig.Graph':
        if graph.vcount() != self.n_cells:
            raise ValidationError(
                f"Graph has {graph.vcount()} vertices but object has {self.n_cells} cells"
            )
        return graph

    @staticmethod
    def _check_rows(value, n_rows: int, what: str) -> np.ndarray:
        if value.shape[0] != n_rows:
            raise ValidationError(f"{what} has {value.shape[0]} rows, expected {n_rows}")
        return value

    # ========== Properties ==========

    @property
    def cell_index(self) -> pd.Index:
        """Get master cell index."""
        return self._cell_index

    @property
    def gene_index(self) -> pd.Index:
        """Get master feature index."""
        return self._gene_index

    @property
    def n_cells(self) -> int:
        return len(self._cell_index)

    @property
    def n_genes(self) -> int:
        return len(self._gene_index)

    @property
    def cell_meta(self) -> pd.DataFrame:
        """Get cell metadata (aligned to master index)."""
        return self._cell_meta

    @property
    def gene_meta(self) -> pd.DataFrame:
        """Get feature metadata (aligned to master index)."""
        return self._gene_meta

    @property
    def assay_names(self) -> List[str]:
        return list(self._assays.keys())

    @property
    def graph(self) -> Optional['ig.Graph']:
        """KNN graph over cells, or None if not built."""
        return self._graph[0] if self._graph else None

    @property
    def nhood_graph(self) -> Optional['ig.Graph']:
        """Neighbourhood overlap graph, or None if not built."""
        return self._nhood_graph[0] if self._nhood_graph else None

    @property
    def nhoods(self) -> sparse.csr_matrix:
        """
        Neighbourhood indicator matrix (cells × nhoods).

        A 1×1 zero matrix means neighbourhoods were never computed.
        """
        return self._nhoods

    @property
    def nhood_ids(self) -> pd.Index:
        return self._nhood_ids

    @property
    def nhood_index(self) -> np.ndarray:
        return self._nhood_index

    @property
    def has_nhoods(self) -> bool:
        return not _is_placeholder(self._nhoods)

    @property
    def n_nhoods(self) -> int:
        return self._nhoods.shape[1] if self.has_nhoods else 0

    @property
    def nhood_expression(self) -> pd.DataFrame:
        """Mean expression per neighbourhood (features × nhoods)."""
        return self._nhood_expression

    @property
    def nhood_adjacency(self) -> sparse.csr_matrix:
        return self._nhood_adjacency

    @property
    def reduced_dims(self) -> Dict[str, np.ndarray]:
        return dict(self._reduced_dims)

    @property
    def nhood_reduced_dim(self) -> Dict[str, np.ndarray]:
        return dict(self._nhood_reduced_dim)

    def nhood_sizes(self) -> pd.Series:
        """Number of member cells per neighbourhood."""
        sizes = np.asarray(self._nhoods.sum(axis=0)).ravel().astype(int)
        if not self.has_nhoods:
            sizes = sizes[:0]
        return pd.Series(sizes, index=self._nhood_ids, name='nhood_size')

    def assay(self, name: Optional[str] = None) -> AssayMatrix:
        """
        Get an assay by name.

        Parameters
        ----------
        name : str, optional
            Assay name. Defaults to config.default_assay.

        Returns
        -------
        AssayMatrix
        """
        name = name or self.config.default_assay
        if name not in self._assays:
            raise ValueError(
                f"Assay '{name}' not found. "
                f"Available assays: {self.assay_names}"
            )
        return self._assays[name]

    def get_slot(self, slot: Union[Slot, str]):
        """Raw content of a data slot (used by check_empty)."""
        slot = Slot.from_name(slot)
        return getattr(self, '_' + slot.attr)

    # ========== Value-Returning Setters ==========

    def _replace(self, **slots) -> 'miloji':
        """Shallow copy with the given private slots replaced."""
        new = copy.copy(self)
        for key, value in slots.items():
            setattr(new, '_' + key, value)
        return new

    def with_assay(self, name: str, data: Union[MatrixLike, AssayMatrix]) -> 'miloji':
        """Return a copy with an assay added or replaced."""
        assays = dict(self._assays)
        assays[name] = self._prepare_assay(name, data)
        return self._replace(assays=assays)

    def with_graph(self, graph: 'ig.Graph') -> 'miloji':
        """Return a copy holding a KNN graph over cells."""
        return self._replace(graph=[self._check_graph(graph)])

    def with_nhoods(self,
                    nhoods: MatrixLike,
                    nhood_ids: Optional[Union[List, pd.Index]] = None,
                    nhood_index: Optional[np.ndarray] = None) -> 'miloji':
        """
        Return a copy with a new neighbourhood indicator matrix.

        Results derived from the previous neighbourhoods (expression,
        adjacency, nhood graph, nhood reduced dims) are dropped.
        """
        nhoods, nhood_ids, nhood_index = self._prepare_nhoods(nhoods, nhood_ids, nhood_index)
        return self._replace(
            nhoods=nhoods,
            nhood_ids=nhood_ids,
            nhood_index=nhood_index,
            nhood_expression=pd.DataFrame(),
            nhood_adjacency=_placeholder_matrix(),
            nhood_graph=[],
            nhood_reduced_dim={},
        )

    def with_nhood_expression(self, value: pd.DataFrame) -> 'miloji':
        """Return a copy with nhood mean expression (features × nhoods) set."""
        if value.shape[1] != self.n_nhoods:
            raise ValidationError(
                f"nhood expression has {value.shape[1]} columns, expected {self.n_nhoods} nhoods"
            )
        return self._replace(nhood_expression=value)

    def with_nhood_adjacency(self, value: sparse.spmatrix) -> 'miloji':
        if value.shape != (self.n_nhoods, self.n_nhoods):
            raise ValidationError(
                f"nhood adjacency shape {value.shape} != ({self.n_nhoods}, {self.n_nhoods})"
            )
        return self._replace(nhood_adjacency=sparse.csr_matrix(value))

    def with_nhood_graph(self, graph: 'ig.Graph') -> 'miloji':
        if graph.vcount() != self.n_nhoods:
            raise ValidationError(
                f"nhood graph has {graph.vcount()} vertices, expected {self.n_nhoods} nhoods"
            )
        return self._replace(nhood_graph=[graph])

    def with_reduced_dim(self, name: str, value: np.ndarray) -> 'miloji':
        reduced_dims = dict(self._reduced_dims)
        reduced_dims[name] = self._check_rows(value, self.n_cells, f"reduced dim '{name}'")
        return self._replace(reduced_dims=reduced_dims)

    def with_nhood_reduced_dim(self, name: str, value: np.ndarray) -> 'miloji':
        nhood_reduced_dim = dict(self._nhood_reduced_dim)
        nhood_reduced_dim[name] = self._check_rows(value, self.n_nhoods, f"nhood reduced dim '{name}'")
        return self._replace(nhood_reduced_dim=nhood_reduced_dim)

    # ========== Summary ==========

    def summary(self) -> Dict[str, Any]:
        """Summary statistics of the object."""
        graph = self.graph
        return {
            'n_cells': self.n_cells,
            'n_genes': self.n_genes,
            'assays': self.assay_names,
            'n_nhoods': self.n_nhoods,
            'has_graph': graph is not None,
            'n_graph_edges': graph.ecount() if graph is not None else 0,
            'has_nhood_expression': not self._nhood_expression.empty,
            'has_nhood_graph': self.nhood_graph is not None,
            'reduced_dims': list(self._reduced_dims.keys()),
            'nhood_reduced_dim': list(self._nhood_reduced_dim.keys()),
        }

    def __repr__(self) -> str:
        s = self.summary()
        return (
            f"miloji ({s['n_cells']:,} cells × {s['n_genes']:,} genes, "
            f"{s['n_nhoods']} nhoods, assays={s['assays']})"
        )

    # ========== AnnData Conversion ==========

    @staticmethod
    def from_anndata(adata,
                     assay_name: Optional[str] = None,
                     layers: bool = True,
                     nhoods_key: str = 'nhoods',
                     config: Optional[MilojiConfig] = None) -> 'miloji':
        """
        Create miloji from AnnData object.

        Extracts:
        - Assays: adata.X (as ``assay_name``) and, optionally, adata.layers
        - Cell metadata: adata.obs
        - Gene metadata: adata.var
        - Neighbourhoods: adata.obsm[nhoods_key], if present
        - Embeddings: remaining adata.obsm entries

        AnnData stores cells × genes; assays are transposed.
        """
        import anndata

        if not isinstance(adata, anndata.AnnData):
            raise TypeError("Input must be AnnData object")

        config = config or MilojiConfig()
        assay_name = assay_name or config.default_assay

        assays = {assay_name: adata.X.T}
        if layers:
            for name, layer in adata.layers.items():
                assays[name] = layer.T

        nhoods = adata.obsm[nhoods_key] if nhoods_key in adata.obsm else None
        reduced_dims = {
            key: np.asarray(value) for key, value in adata.obsm.items()
            if key != nhoods_key
        }

        print(f"  ✓ AnnData -> miloji: {adata.n_obs} cells × {adata.n_vars} genes, "
              f"{len(assays)} assays")

        nhood_ids = adata.uns.get('nhood_ids') if nhoods is not None else None

        obj = miloji(
            assays=assays,
            cell_ids=adata.obs_names,
            gene_names=adata.var_names,
            cell_metadata=adata.obs.copy(),
            gene_metadata=adata.var.copy(),
            nhoods=nhoods,
            nhood_ids=list(nhood_ids) if nhood_ids is not None else None,
            reduced_dims=reduced_dims,
            config=config,
        )

        if obj.has_nhoods and 'nhood_expression' in adata.varm:
            expr = pd.DataFrame(
                np.asarray(adata.varm['nhood_expression'], dtype=np.float64),
                index=obj.gene_index,
                columns=obj.nhood_ids,
            )
            # genes left out of a subset_row computation were written as NaN
            obj = obj.with_nhood_expression(expr.dropna(how='all'))

        return obj

    def to_anndata(self, assay: Optional[str] = None) -> 'anndata.AnnData':
        """
        Convert to AnnData object.

        Creates AnnData with:
        - X: the selected assay (transposed to cells × genes)
        - layers: every other assay
        - obsm['nhoods']: indicator matrix (if computed)
        - obsm: cell-level reduced dims
        - varm['nhood_expression']: nhood mean expression (if computed)
        """
        import anndata

        main = self.assay(assay)
        main_name = assay or self.config.default_assay

        adata = anndata.AnnData(
            X=main.data.T,
            obs=self._cell_meta.copy(),
            var=self._gene_meta.copy(),
        )
        for name, other in self._assays.items():
            if name != main_name:
                adata.layers[name] = other.data.T

        if self.has_nhoods:
            adata.obsm['nhoods'] = self._nhoods
            adata.uns['nhood_ids'] = [str(i) for i in self._nhood_ids]
        for name, value in self._reduced_dims.items():
            adata.obsm[name] = value

        if not self._nhood_expression.empty:
            expr = self._nhood_expression.reindex(self._gene_index)
            adata.varm['nhood_expression'] = expr.to_numpy()

        return adata
