"""Tests for nrflow.solver.jacobian: partial derivatives and reduction."""

from __future__ import annotations

import numpy as np
import pytest

from nrflow.network.node_types import NodeType, classify
from nrflow.solver.deviation import nodal_power
from nrflow.solver.jacobian import (
    build_jacobian_blocks,
    build_reduced_jacobian,
    reduce_jacobian,
)

S, PV, PQ, PQI = NodeType.SLACK, NodeType.PV, NodeType.PQ, NodeType.PQ_INTERMEDIATE


def _numerical_derivative(admittance, voltage, j, direction, h=1e-6):
    """Central difference of the nodal power w.r.t. e_j (direction=1) or f_j (direction=1j)."""
    step = np.zeros_like(voltage)
    step[j] = direction * h
    return (nodal_power(admittance, voltage + step) - nodal_power(admittance, voltage - step)) / (2 * h)


class TestJacobianBlocks:
    """The analytic partials must match finite differences of S = V·conj(Y·V)."""

    def test_matches_finite_differences(self, random_admittance, random_voltage):
        blocks = build_jacobian_blocks(random_admittance, random_voltage)
        for j in range(4):
            d_de = _numerical_derivative(random_admittance, random_voltage, j, 1.0)
            d_df = _numerical_derivative(random_admittance, random_voltage, j, 1j)
            np.testing.assert_allclose(blocks.dp_de[:, j], d_de.real, atol=1e-6)
            np.testing.assert_allclose(blocks.dq_de[:, j], d_de.imag, atol=1e-6)
            np.testing.assert_allclose(blocks.dp_df[:, j], d_df.real, atol=1e-6)
            np.testing.assert_allclose(blocks.dq_df[:, j], d_df.imag, atol=1e-6)

    def test_off_diagonal_formulas(self, random_admittance, random_voltage):
        blocks = build_jacobian_blocks(random_admittance, random_voltage)
        g, b = random_admittance[0, 2].real, random_admittance[0, 2].imag
        e, f = random_voltage[0].real, random_voltage[0].imag
        assert blocks.dp_df[0, 2] == pytest.approx(-e * b + f * g)
        assert blocks.dp_de[0, 2] == pytest.approx(e * g + f * b)
        assert blocks.dq_df[0, 2] == pytest.approx(-f * b - e * g)
        assert blocks.dq_de[0, 2] == pytest.approx(f * g - e * b)

    def test_squared_voltage_partials_diagonal(self, random_admittance, random_voltage):
        blocks = build_jacobian_blocks(random_admittance, random_voltage)
        np.testing.assert_allclose(np.diag(blocks.dv2_df), 2 * random_voltage.imag)
        np.testing.assert_allclose(np.diag(blocks.dv2_de), 2 * random_voltage.real)
        assert np.count_nonzero(blocks.dv2_df - np.diag(np.diag(blocks.dv2_df))) == 0


class TestReducedJacobian:

    @pytest.mark.parametrize("types", [
        [S, PQ, PQ, PQ],
        [S, PV, PV, PV],
        [PQ, S, PV, PQ],
        [PV, PQ, PQI, S],
        [S, S, PQ, PQ],
    ])
    def test_square_with_dimension_two_n_minus_one(self, random_admittance, random_voltage, types):
        c = classify(types, 4)
        jac = build_reduced_jacobian(random_admittance, random_voltage, c)
        assert jac.shape == (6, 6)

    def test_block_layout_without_pv(self, random_admittance, random_voltage):
        c = classify([PQ, S, PQ, PQ], 4)
        blocks = build_jacobian_blocks(random_admittance, random_voltage)
        jac = reduce_jacobian(blocks, c)
        keep = [0, 2, 3]
        np.testing.assert_allclose(jac[:3, :3], blocks.dp_df[np.ix_(keep, keep)])
        np.testing.assert_allclose(jac[:3, 3:], blocks.dp_de[np.ix_(keep, keep)])
        np.testing.assert_allclose(jac[3:, :3], blocks.dq_df[np.ix_(keep, keep)])
        np.testing.assert_allclose(jac[3:, 3:], blocks.dq_de[np.ix_(keep, keep)])

    def test_pv_rows_at_tail(self, random_admittance, random_voltage):
        # Non-slack order: nodes 1 (PV), 2 (PQ), 3 (PV)
        c = classify([S, PV, PQ, PV], 4)
        blocks = build_jacobian_blocks(random_admittance, random_voltage)
        jac = reduce_jacobian(blocks, c)
        # Q block holds only node 2
        np.testing.assert_allclose(jac[3, :3], blocks.dq_df[2, [1, 2, 3]])
        # V² rows for nodes 1 and 3
        e, f = random_voltage.real, random_voltage.imag
        np.testing.assert_allclose(jac[4], [2 * f[1], 0, 0, 2 * e[1], 0, 0])
        np.testing.assert_allclose(jac[5], [0, 0, 2 * f[3], 0, 0, 2 * e[3]])

    def test_single_node_network(self):
        c = classify([S], 1)
        jac = build_reduced_jacobian(np.array([[1 - 1j]]), np.array([1 + 0j]), c)
        assert jac.shape == (0, 0)
