"""Network description consumed by the solver.

Provides node type classification and validation of the admittance
matrix and per-node vectors.
"""

from .admittance import validate_admittance, validate_nodal_vector
from .node_types import NodeClassification, NodeType, classify, count_node_types

__all__ = [
    "NodeClassification",
    "NodeType",
    "classify",
    "count_node_types",
    "validate_admittance",
    "validate_nodal_vector",
]
