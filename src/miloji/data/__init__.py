"""
data - Core data structures

This module contains the miloji data structure, its assay container,
configuration, slot predicates and the exception hierarchy.
"""

from .config import (
    MilojiConfig,
    SlotKind,
    Slot,
    ReducedDimTarget,
    MilojiError,
    ConsistencyError,
    ValidationError,
    NoNeighbourhoodsError,
    MissingExpressionError,
    UnsupportedAttributeKind,
    ReplacementNotImplementedError,
    EmptyNeighbourhoodError,
)

from .assay import AssayMatrix, resolve_feature_indices
from .core import miloji
from .utils import check_empty, check_binary, set_reduced_dims

__all__ = [
    # Core class
    'miloji',

    # Configuration
    'MilojiConfig',
    'SlotKind',
    'Slot',
    'ReducedDimTarget',

    # Components
    'AssayMatrix',
    'resolve_feature_indices',

    # Utilities
    'check_empty',
    'check_binary',
    'set_reduced_dims',

    # Exceptions
    'MilojiError',
    'ConsistencyError',
    'ValidationError',
    'NoNeighbourhoodsError',
    'MissingExpressionError',
    'UnsupportedAttributeKind',
    'ReplacementNotImplementedError',
    'EmptyNeighbourhoodError',
]
