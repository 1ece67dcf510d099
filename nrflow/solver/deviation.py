"""Mismatch vectors and voltage corrections.

Sign convention: ``actual_s`` is the power drawn at each node and the
nodal power V·conj(Y·V) is the power injected into the network, so the
two cancel at the solution: ΔS = S_actual + S_iterated → 0.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from nrflow.core.exceptions import InconsistentStateError
from nrflow.network.node_types import NodeClassification


def nodal_power(
    admittance: NDArray[np.complex128],
    voltage: NDArray[np.complex128],
) -> NDArray[np.complex128]:
    """Apparent power injected at every node: S_i = V_i · conj(Σ_j Y_ij·V_j)."""
    current = admittance @ voltage
    return voltage * np.conj(current)


def squared_magnitudes(
    voltage: NDArray[np.complex128],
    classification: NodeClassification,
) -> NDArray[np.float64]:
    """|V|² at PV nodes, zero elsewhere."""
    v2 = np.zeros(voltage.shape[0])
    pv = classification.pv_indices
    v2[pv] = np.abs(voltage[pv]) ** 2
    return v2


@dataclass(frozen=True)
class DeviationVector:
    """Reduced real mismatch vector [ΔP non-slack | ΔQ PQ | Δ|V|² PV]."""
    values: NDArray[np.float64]
    n_p: int
    n_q: int
    n_v2: int

    @property
    def delta_p(self) -> NDArray[np.float64]:
        return self.values[:self.n_p]

    @property
    def delta_q(self) -> NDArray[np.float64]:
        return self.values[self.n_p:self.n_p + self.n_q]

    @property
    def delta_v2(self) -> NDArray[np.float64] | None:
        """None when the network has no PV nodes."""
        if self.n_v2 == 0:
            return None
        return self.values[self.n_p + self.n_q:]

    def __len__(self) -> int:
        return self.values.shape[0]


def reduce_deviation_vector(
    delta_s: NDArray[np.complex128],
    delta_v2: NDArray[np.float64] | None,
    classification: NodeClassification,
) -> DeviationVector:
    """Project complex power and squared voltage mismatches onto the reduced equations.

    Raises:
        InconsistentStateError: PV nodes exist but ``delta_v2`` is None.
    """
    delta_s = np.asarray(delta_s, dtype=complex)
    pv = classification.pv_indices
    if pv.size > 0 and delta_v2 is None:
        raise InconsistentStateError(
            "The vector of squared voltage magnitude deviations may not be None "
            "when PV nodes are present."
        )

    delta_p = delta_s[classification.non_slack_indices].real
    delta_q = delta_s[classification.load_indices].imag
    parts = [delta_p, delta_q]
    if pv.size > 0:
        parts.append(np.asarray(delta_v2, dtype=float)[pv])

    return DeviationVector(
        values=np.concatenate(parts),
        n_p=delta_p.shape[0],
        n_q=delta_q.shape[0],
        n_v2=pv.shape[0],
    )


def split_correction(
    correction: NDArray[np.float64],
    classification: NodeClassification,
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Split a solution vector into (ΔE, ΔF) for the non-slack nodes."""
    n = classification.node_count - 1
    delta_f = correction[:n]
    delta_e = correction[n:2 * n]
    return delta_e, delta_f


def apply_correction_to_voltages(
    voltage: NDArray[np.complex128],
    correction: NDArray[np.float64],
    classification: NodeClassification,
) -> NDArray[np.complex128]:
    """Return a new voltage vector with ΔE + jΔF subtracted at every non-slack node."""
    delta_e, delta_f = split_correction(correction, classification)
    corrected = np.array(voltage, dtype=complex)
    corrected[classification.non_slack_indices] -= delta_e + 1j * delta_f
    return corrected
