"""
config.py - Configuration and slot definitions for miloji

Contains:
- MilojiConfig: Configuration settings
- SlotKind / Slot: Data slots of a miloji object, tagged by kind
- ReducedDimTarget: Targets accepted by set_reduced_dims
- Exception hierarchy
"""

from dataclasses import dataclass
from enum import Enum

EMPTY_NHOOD_POLICIES = ("raise", "nan")


@dataclass
class MilojiConfig:
    """Configuration for miloji names and settings."""

    # Assay / index names
    default_assay: str = "logcounts"
    cell_id_col: str = "cell"
    gene_id_col: str = "gene"

    # Processing settings
    auto_sparse_threshold: float = 0.5  # Convert to sparse if >50% zeros
    nhood_overlap: int = 1  # Min shared cells for an nhood-nhood edge
    empty_nhoods: str = "raise"  # 'raise' or 'nan'

    def __post_init__(self):
        if self.empty_nhoods not in EMPTY_NHOOD_POLICIES:
            raise ValueError(
                f"Invalid empty_nhoods policy: {self.empty_nhoods!r}. "
                f"Choose from {EMPTY_NHOOD_POLICIES}"
            )
        if self.nhood_overlap < 0:
            raise ValueError(f"nhood_overlap must be >= 0, got {self.nhood_overlap}")


class SlotKind(Enum):
    """How the content of a slot is interpreted."""

    GRAPH = "graph"
    LIST = "list"
    MATRIX = "matrix"


class Slot(Enum):
    """
    Data slots of a miloji object.

    Each member carries the attribute name and the kind of content
    stored there.
    """

    GRAPH = ("graph", SlotKind.GRAPH)
    NHOOD_GRAPH = ("nhood_graph", SlotKind.GRAPH)
    REDUCED_DIMS = ("reduced_dims", SlotKind.LIST)
    NHOOD_REDUCED_DIM = ("nhood_reduced_dim", SlotKind.LIST)
    NHOODS = ("nhoods", SlotKind.MATRIX)
    NHOOD_EXPRESSION = ("nhood_expression", SlotKind.MATRIX)
    NHOOD_ADJACENCY = ("nhood_adjacency", SlotKind.MATRIX)

    def __init__(self, attr: str, kind: SlotKind):
        self.attr = attr
        self.kind = kind

    @classmethod
    def from_name(cls, name) -> "Slot":
        """
        Resolve a slot from a member or attribute name.

        Raises
        ------
        UnsupportedAttributeKind
            If the name does not match a known slot.
        """
        if isinstance(name, cls):
            return name
        for slot in cls:
            if slot.attr == name:
                return slot
        raise UnsupportedAttributeKind(
            f"Unknown slot {name!r}. Known slots: {[s.attr for s in cls]}"
        )


class ReducedDimTarget(Enum):
    """Slots that can receive a reduced-dimension matrix."""

    NHOOD = "nhood_reduced_dim"
    CELL = "reduced_dims"


class MilojiError(Exception):
    """Base exception for miloji errors."""

    pass


class ConsistencyError(MilojiError):
    """Raised when data consistency checks fail."""

    pass


class ValidationError(MilojiError):
    """Raised when data validation fails."""

    pass


class NoNeighbourhoodsError(MilojiError):
    """Raised when neighbourhoods are required but were never computed."""

    pass


class MissingExpressionError(MilojiError):
    """Raised when an indicator matrix is given without expression data."""

    pass


class UnsupportedAttributeKind(MilojiError):
    """Raised when a slot name or its content has no known kind."""

    pass


class ReplacementNotImplementedError(MilojiError):
    """Raised for a reduced-dimension target without a setter."""

    pass


class EmptyNeighbourhoodError(MilojiError):
    """Raised when a neighbourhood has no member cells."""

    pass
