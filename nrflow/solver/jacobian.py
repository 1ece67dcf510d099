"""Power flow Jacobian in rectangular coordinates.

With V = e + jf, Y = G + jB and the nodal power S = V·conj(Y·V), the
Jacobian holds the partial derivatives of P, Q and |V|² with respect to
the real (e) and imaginary (f) voltage components.

Full blocks (N×N, before reduction):
  J1 = ∂P/∂f   J2 = ∂P/∂e
  J3 = ∂Q/∂f   J4 = ∂Q/∂e
  J5 = ∂|V|²/∂f   J6 = ∂|V|²/∂e   (diagonal only)

Reduced layout, 2(N-1) × 2(N-1), columns [f of non-slack | e of non-slack]:
  rows P  : all non-slack nodes
  rows Q  : PQ nodes
  rows V² : PV nodes (block omitted when there are none)
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from nrflow.core.exceptions import InconsistentStateError
from nrflow.network.node_types import NodeClassification


@dataclass(frozen=True)
class JacobianBlocks:
    """Unreduced partial derivative matrices."""
    dp_df: NDArray[np.float64]
    dp_de: NDArray[np.float64]
    dq_df: NDArray[np.float64]
    dq_de: NDArray[np.float64]
    dv2_df: NDArray[np.float64]
    dv2_de: NDArray[np.float64]


def build_jacobian_blocks(
    admittance: NDArray[np.complex128],
    voltage: NDArray[np.complex128],
) -> JacobianBlocks:
    """Assemble the full (unreduced) Jacobian blocks for all node pairs."""
    G = admittance.real
    B = admittance.imag
    e = voltage.real
    f = voltage.imag
    e_i = e[:, np.newaxis]
    f_i = f[:, np.newaxis]

    # Off-diagonal partials (row i, column j)
    dp_df = -e_i * B + f_i * G
    dp_de = e_i * G + f_i * B
    dq_df = -f_i * B - e_i * G
    dq_de = f_i * G - e_i * B

    # Self-coupling: sums over j != i using the other node's voltage
    g_ii = np.diag(G)
    b_ii = np.diag(B)
    sum_p_f = G @ f + B @ e - (g_ii * f + b_ii * e)  # Σ fj·gij + ej·bij
    sum_p_e = G @ e - B @ f - (g_ii * e - b_ii * f)  # Σ ej·gij - fj·bij

    np.fill_diagonal(dp_df, 2 * f * g_ii + sum_p_f)
    np.fill_diagonal(dp_de, 2 * e * g_ii + sum_p_e)
    np.fill_diagonal(dq_df, -2 * f * b_ii + sum_p_e)
    np.fill_diagonal(dq_de, -2 * e * b_ii - sum_p_f)

    return JacobianBlocks(
        dp_df=dp_df,
        dp_de=dp_de,
        dq_df=dq_df,
        dq_de=dq_de,
        dv2_df=np.diag(2 * f),
        dv2_de=np.diag(2 * e),
    )


def reduce_jacobian(
    blocks: JacobianBlocks,
    classification: NodeClassification,
) -> NDArray[np.float64]:
    """Eliminate the slack node and select the equations per node type.

    The result is always square with dimension 2·(N-1): PV nodes trade
    their reactive power row for a squared voltage magnitude row.
    """
    cols = classification.non_slack_indices
    p_rows = cols
    q_rows = classification.load_indices
    v2_rows = classification.pv_indices

    row_blocks = [
        np.hstack([blocks.dp_df[np.ix_(p_rows, cols)], blocks.dp_de[np.ix_(p_rows, cols)]]),
        np.hstack([blocks.dq_df[np.ix_(q_rows, cols)], blocks.dq_de[np.ix_(q_rows, cols)]]),
    ]
    if v2_rows.size > 0:
        row_blocks.append(
            np.hstack([blocks.dv2_df[np.ix_(v2_rows, cols)], blocks.dv2_de[np.ix_(v2_rows, cols)]])
        )

    jacobian = np.vstack(row_blocks)
    size = 2 * (classification.node_count - 1)
    if jacobian.shape != (size, size):
        raise InconsistentStateError(
            f"Reduced Jacobian has shape {jacobian.shape}, expected ({size}, {size})"
        )
    return jacobian


def build_reduced_jacobian(
    admittance: NDArray[np.complex128],
    voltage: NDArray[np.complex128],
    classification: NodeClassification,
) -> NDArray[np.float64]:
    """Full Jacobian at ``voltage``, reduced for the given node types."""
    return reduce_jacobian(build_jacobian_blocks(admittance, voltage), classification)
