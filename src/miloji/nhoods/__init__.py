# src/miloji/nhoods/__init__.py

"""
Neighbourhood-level transforms on a cells × nhoods indicator matrix.

Modules
-------
- graph: KNN list -> igraph conversion, nhood overlap adjacency and graph
- expression: Mean expression within neighbourhoods
- annotation: Per-nhood sample counts and cell-label summaries

Quick Start
-----------
>>> import miloji as mj
>>>
>>> # Attach a KNN graph from a neighbour index matrix (n_cells x k)
>>> milo = mj.nhoods.add_knn_graph(milo, nn)
>>>
>>> # Mean expression per nhood (features × nhoods)
>>> milo = mj.nhoods.calc_nhood_expression(milo, assay='logcounts')
>>> milo.nhood_expression.head()
>>>
>>> # Overlap between nhoods
>>> adj = mj.nhoods.build_nhood_adjacency(milo.nhoods, overlap=3)
>>> milo = mj.nhoods.build_nhood_graph(milo, overlap=3)
>>>
>>> # Label nhoods by their cells
>>> anno = mj.nhoods.annotate_nhoods(milo, anno_col='cell_type')

Notes
-----
- Every function returning a miloji returns a new object; the input
  is left unchanged.
- Indicator matrices must be binary; a 1×1 matrix means neighbourhoods
  were never computed.
"""

from .graph import (
    NhoodAdjacency,
    knn_to_graph,
    add_knn_graph,
    build_nhood_adjacency,
    build_nhood_graph,
)

from .expression import calc_nhood_expression

from .annotation import (
    count_nhoods,
    annotate_nhoods,
    annotate_nhoods_continuous,
)

__all__ = [
    # Classes
    'NhoodAdjacency',

    # Graphs
    'knn_to_graph',
    'add_knn_graph',
    'build_nhood_adjacency',
    'build_nhood_graph',

    # Expression
    'calc_nhood_expression',

    # Annotation
    'count_nhoods',
    'annotate_nhoods',
    'annotate_nhoods_continuous',
]
