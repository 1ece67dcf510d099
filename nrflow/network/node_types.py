"""Node classification for Newton-Raphson power flow.

Each node is one of:
  SLACK: fixed voltage magnitude and angle, balances the network
  PV: fixed active power and voltage magnitude
  PQ: fixed active and reactive power
  PQ_INTERMEDIATE: reserved marker, solved exactly like PQ
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

import numpy as np

from nrflow.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class NodeType(str, Enum):
    SLACK = "slack"
    PV = "pv"
    PQ = "pq"
    PQ_INTERMEDIATE = "pq_intermediate"

    @property
    def is_load(self) -> bool:
        """True for nodes whose reactive power is specified."""
        return self in (NodeType.PQ, NodeType.PQ_INTERMEDIATE)


_ALIASES = {
    "sl": NodeType.SLACK,
    "slack": NodeType.SLACK,
    "pv": NodeType.PV,
    "pq": NodeType.PQ,
    "pq_intermediate": NodeType.PQ_INTERMEDIATE,
}


def _coerce(value: NodeType | str, position: int) -> NodeType:
    if isinstance(value, NodeType):
        return value
    if isinstance(value, str) and value.lower() in _ALIASES:
        return _ALIASES[value.lower()]
    raise ConfigurationError(f"Unknown node type {value!r} at position {position}")


@dataclass(frozen=True)
class NodeClassification:
    """Validated node type vector with derived counts and index sets.

    Built through :func:`classify`, which guarantees exactly one slack
    node and counts that match the type vector.
    """
    node_types: tuple[NodeType, ...]
    slack_index: int
    type_counts: Mapping[NodeType, int]
    # Non-fatal findings (e.g. surplus slack nodes)
    diagnostics: tuple[str, ...] = field(default_factory=tuple)

    @property
    def node_count(self) -> int:
        return len(self.node_types)

    @property
    def pv_count(self) -> int:
        return self.type_counts[NodeType.PV]

    @property
    def non_slack_indices(self) -> np.ndarray:
        """Nodes carrying an active power equation, in node order."""
        return np.array(
            [i for i, t in enumerate(self.node_types) if t != NodeType.SLACK],
            dtype=int,
        )

    @property
    def load_indices(self) -> np.ndarray:
        """Nodes carrying a reactive power equation (PQ and PQ intermediate)."""
        return np.array(
            [i for i, t in enumerate(self.node_types) if t.is_load],
            dtype=int,
        )

    @property
    def pv_indices(self) -> np.ndarray:
        """Nodes carrying a squared voltage magnitude equation."""
        return np.array(
            [i for i, t in enumerate(self.node_types) if t == NodeType.PV],
            dtype=int,
        )

    def __len__(self) -> int:
        return len(self.node_types)


def count_node_types(node_types: Iterable[NodeType]) -> dict[NodeType, int]:
    """Occurrences of every node type, zero for absent ones."""
    counts = {t: 0 for t in NodeType}
    for t in node_types:
        counts[t] += 1
    return counts


def classify(
    node_types: Iterable[NodeType | str],
    node_count: int,
) -> NodeClassification:
    """Validate a node type vector against the network size.

    The first slack node wins. Any further slack node is reclassified as
    PV (its voltage magnitude stays fixed at target) and a diagnostic is
    recorded, so the reduced system keeps one reference node.

    Raises:
        ConfigurationError: length mismatch, unknown type, or no slack node.
    """
    types = [_coerce(t, i) for i, t in enumerate(node_types)]
    if len(types) != node_count:
        raise ConfigurationError(
            f"Got {len(types)} node types for {node_count} nodes. "
            "The vector of node types must match the number of nodes."
        )

    slack_positions = [i for i, t in enumerate(types) if t == NodeType.SLACK]
    if not slack_positions:
        raise ConfigurationError("No slack node defined. Exactly one node must be of type slack.")

    slack_index = slack_positions[0]
    diagnostics: list[str] = []
    if len(slack_positions) > 1:
        surplus = slack_positions[1:]
        for i in surplus:
            types[i] = NodeType.PV
        message = (
            f"Found {len(slack_positions)} slack nodes at {slack_positions}. "
            f"Using node {slack_index}, treating {surplus} as PV nodes."
        )
        logger.warning(message)
        diagnostics.append(message)

    counts = count_node_types(types)
    if sum(counts.values()) != node_count or counts[NodeType.SLACK] != 1:
        raise ConfigurationError(f"Inconsistent node type counts: {counts}")

    return NodeClassification(
        node_types=tuple(types),
        slack_index=slack_index,
        type_counts=MappingProxyType(counts),
        diagnostics=tuple(diagnostics),
    )
