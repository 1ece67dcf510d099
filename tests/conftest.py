"""Shared test fixtures for nrflow network and solver tests."""

from __future__ import annotations

import numpy as np
import pytest

from nrflow.network.node_types import NodeType
from nrflow.solver.newton_raphson import NewtonRaphsonSolver


def build_admittance(n_nodes: int, branches: list[tuple[int, int, complex]]) -> np.ndarray:
    """Y-bus from series impedances (no shunts, no taps).

    For each branch with impedance z between i and j:
    Y_ii += y, Y_jj += y, Y_ij -= y, Y_ji -= y
    """
    y_bus = np.zeros((n_nodes, n_nodes), dtype=complex)
    for i, j, z in branches:
        y = 1.0 / z
        y_bus[i, i] += y
        y_bus[j, j] += y
        y_bus[i, j] -= y
        y_bus[j, i] -= y
    return y_bus


# ======================================================================
# 2-node network: slack + PQ
# ======================================================================

TWO_NODE_ADMITTANCE = np.array([[2 - 4j, -2 + 4j], [-2 + 4j, 2 - 4j]])
TWO_NODE_POWER = np.array([0.0, -1.0 - 0.5j])


@pytest.fixture
def two_node_solver() -> NewtonRaphsonSolver:
    """Slack at 1+0j feeding a PQ node over y = 2-4j."""
    solver = NewtonRaphsonSolver(epsilon=1e-6, max_iterations=30)
    solver.set_admittance(TWO_NODE_ADMITTANCE)
    solver.set_node_types([NodeType.SLACK, NodeType.PQ])
    solver.set_target_voltage([1.0 + 0j, 1.0 + 0j])
    return solver


# ======================================================================
# 3-node meshed network: slack + PV + PQ
# ======================================================================

THREE_NODE_BRANCHES = [
    (0, 1, 0.02 + 0.06j),
    (1, 2, 0.03 + 0.09j),
    (0, 2, 0.02 + 0.08j),
]
# PV node generates 0.4, PQ node draws 0.6 + j0.25
THREE_NODE_POWER = np.array([0.0, -0.4 + 0.0j, 0.6 + 0.25j])
THREE_NODE_TARGET = np.array([1.0 + 0j, 1.02 + 0j, 1.0 + 0j])


@pytest.fixture
def three_node_admittance() -> np.ndarray:
    return build_admittance(3, THREE_NODE_BRANCHES)


@pytest.fixture
def three_node_solver(three_node_admittance) -> NewtonRaphsonSolver:
    solver = NewtonRaphsonSolver(epsilon=1e-6, max_iterations=30)
    solver.set_admittance(three_node_admittance)
    solver.set_node_types([NodeType.SLACK, NodeType.PV, NodeType.PQ])
    solver.set_target_voltage(THREE_NODE_TARGET)
    return solver


@pytest.fixture
def random_admittance() -> np.ndarray:
    """Dense 4-node admittance matrix of a fully meshed network."""
    rng = np.random.default_rng(42)
    branches = [
        (i, j, complex(rng.uniform(0.01, 0.05), rng.uniform(0.05, 0.2)))
        for i in range(4) for j in range(i + 1, 4)
    ]
    return build_admittance(4, branches)


@pytest.fixture
def random_voltage() -> np.ndarray:
    rng = np.random.default_rng(7)
    magnitude = rng.uniform(0.95, 1.05, 4)
    angle = rng.uniform(-0.1, 0.1, 4)
    return magnitude * np.exp(1j * angle)
