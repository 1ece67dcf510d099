"""A single Newton-Raphson update.

Per step:
1. S_iterated = V · conj(Y·V)
2. |V|² at PV nodes
3. ΔS = S_actual + S_iterated, Δ|V|² = |V|²_iterated - |V|²_target
4. Reduce the mismatch vector and build the reduced Jacobian at V
5. Solve J · x = Δ
6. V ← V - (ΔE + jΔF) at non-slack nodes
7. Converged when ||ΔP||∞ < ε and ||ΔQ||∞ < ε (pre-correction mismatch)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from nrflow.core.exceptions import InconsistentStateError, SingularMatrixError
from nrflow.network.node_types import NodeClassification
from nrflow.solver.deviation import (
    DeviationVector,
    apply_correction_to_voltages,
    nodal_power,
    reduce_deviation_vector,
    split_correction,
    squared_magnitudes,
)
from nrflow.solver.evaluation import IterationEvaluation
from nrflow.solver.jacobian import build_reduced_jacobian
from nrflow.solver.linear import DenseLUSolver

logger = logging.getLogger(__name__)


def inf_norm(values: NDArray[np.float64] | None) -> float:
    """Infinity norm, 0.0 for an empty vector and +inf for None."""
    if values is None:
        return float("inf")
    if values.size == 0:
        return 0.0
    return float(np.max(np.abs(values)))


@dataclass(frozen=True)
class IterationStepResult:
    """State after one step. ``voltage`` is unchanged when the solve failed."""
    voltage: NDArray[np.complex128]
    iterated_power: NDArray[np.complex128]
    deviation: DeviationVector
    jacobian: NDArray[np.float64]
    evaluation: IterationEvaluation
    converged: bool

    @property
    def solved(self) -> bool:
        return self.evaluation.successful


class IterationStep:
    """Newton-Raphson update for a fixed network and power injection.

    Parameters
    ----------
    admittance : ndarray
        Validated N×N complex admittance matrix.
    classification : NodeClassification
        Node types of the same N nodes.
    target_voltage : ndarray
        Complex target voltages; only their magnitudes enter the PV rows.
    actual_power : ndarray
        Per-node power drawn from the network.
    epsilon : float
        Convergence threshold on the P and Q infinity norms.
    linear_solver : object, optional
        Anything with ``solve(matrix, rhs)``; defaults to :class:`DenseLUSolver`.
    """

    def __init__(
        self,
        admittance: NDArray[np.complex128],
        classification: NodeClassification,
        target_voltage: NDArray[np.complex128],
        actual_power: NDArray[np.complex128],
        epsilon: float,
        linear_solver=None,
    ) -> None:
        self.admittance = admittance
        self.classification = classification
        self.target_v2 = np.abs(target_voltage) ** 2
        self.actual_power = actual_power
        self.epsilon = epsilon
        self.linear_solver = linear_solver if linear_solver is not None else DenseLUSolver()

    def deviation_at(
        self, voltage: NDArray[np.complex128]
    ) -> tuple[NDArray[np.complex128], DeviationVector]:
        """Nodal power and reduced mismatch vector at ``voltage``."""
        iterated_power = nodal_power(self.admittance, voltage)
        iterated_v2 = squared_magnitudes(voltage, self.classification)
        delta_s = self.actual_power + iterated_power
        delta_v2 = iterated_v2 - self.target_v2
        return iterated_power, reduce_deviation_vector(delta_s, delta_v2, self.classification)

    def run(self, index: int, voltage: NDArray[np.complex128]) -> IterationStepResult:
        """Perform iteration number ``index`` starting from ``voltage``.

        A failing linear solve is reported through an unsuccessful
        evaluation, not raised.

        Raises:
            InconsistentStateError: NaN in the active or reactive mismatch.
        """
        iterated_power, deviation = self.deviation_at(voltage)
        for name, part in (("deltaP", deviation.delta_p), ("deltaQ", deviation.delta_q)):
            nan_positions = np.flatnonzero(np.isnan(part))
            if nan_positions.size > 0:
                raise InconsistentStateError(
                    f"{name} contains NaN values at reduced positions {nan_positions.tolist()} "
                    f"in iteration {index}"
                )

        jacobian = build_reduced_jacobian(self.admittance, voltage, self.classification)

        try:
            correction = self.linear_solver.solve(jacobian, deviation.values)
        except SingularMatrixError:
            logger.error(
                "Reduced Jacobian matrix is singular in iteration %d", index,
                exc_info=True, extra={"iteration": index},
            )
            return self._failed(index, voltage, iterated_power, deviation, jacobian)
        except InconsistentStateError:
            raise
        except Exception:
            logger.error(
                "Solving the system of equations failed in iteration %d", index,
                exc_info=True, extra={"iteration": index},
            )
            return self._failed(index, voltage, iterated_power, deviation, jacobian)

        corrected = apply_correction_to_voltages(voltage, correction, self.classification)
        delta_e, delta_f = split_correction(correction, self.classification)

        delta_p_max = inf_norm(deviation.delta_p)
        delta_q_max = inf_norm(deviation.delta_q)
        evaluation = IterationEvaluation(
            index=index,
            successful=True,
            delta_p_max=delta_p_max,
            delta_q_max=delta_q_max,
            delta_v2_max=inf_norm(deviation.delta_v2),
            delta_e_max=inf_norm(delta_e),
            delta_f_max=inf_norm(delta_f),
        )
        logger.debug(
            "Iteration %d: |dP|=%.3e |dQ|=%.3e |dV2|=%.3e |dE|=%.3e |dF|=%.3e",
            index, evaluation.delta_p_max, evaluation.delta_q_max,
            evaluation.delta_v2_max, evaluation.delta_e_max, evaluation.delta_f_max,
            extra={"iteration": index},
        )

        return IterationStepResult(
            voltage=corrected,
            iterated_power=iterated_power,
            deviation=deviation,
            jacobian=jacobian,
            evaluation=evaluation,
            converged=delta_p_max < self.epsilon and delta_q_max < self.epsilon,
        )

    @staticmethod
    def _failed(
        index: int,
        voltage: NDArray[np.complex128],
        iterated_power: NDArray[np.complex128],
        deviation: DeviationVector,
        jacobian: NDArray[np.float64],
    ) -> IterationStepResult:
        return IterationStepResult(
            voltage=voltage,
            iterated_power=iterated_power,
            deviation=deviation,
            jacobian=jacobian,
            evaluation=IterationEvaluation.failed(index),
            converged=False,
        )
