# src/miloji/__init__.py

"""
miloji - Neighbourhood analysis on single-cell KNN graphs
"""

# Core data structures
from .data.core import miloji
from .data.config import MilojiConfig, Slot, ReducedDimTarget
from .data.assay import AssayMatrix

# Import submodules
from . import data
from . import nhoods

__version__ = '0.1.0'

__all__ = [
    # Core classes
    'miloji',
    'MilojiConfig',
    'AssayMatrix',
    'Slot',
    'ReducedDimTarget',

    # Submodules
    'data',
    'nhoods',
]
