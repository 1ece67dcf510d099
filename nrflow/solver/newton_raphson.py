"""Newton-Raphson AC power flow solver in rectangular coordinates.

Usage:
  1. set the admittance matrix, node types and target voltages once
  2. call :meth:`NewtonRaphsonSolver.solve` for each new power situation

Terminal states of a solve:
  CONVERGED: valid result
  ITERATION_BUDGET_EXHAUSTED: invalid result, not an error
  SOLVE_FAILED: linear solve failed, invalid result with trace

Only configuration mistakes (:class:`ConfigurationError`) and NaN in the
power mismatch (:class:`InconsistentStateError`) are raised.

Not safe for concurrent solves on one instance.
"""

from __future__ import annotations

import logging
import time

import numpy as np
from numpy.typing import NDArray

from nrflow.config import SolverSettings, settings as default_settings
from nrflow.core.exceptions import ConfigurationError, InconsistentStateError
from nrflow.network.admittance import validate_admittance, validate_nodal_vector
from nrflow.network.node_types import NodeClassification, NodeType, classify
from nrflow.solver.evaluation import (
    IterationEvaluation,
    PowerFlowResult,
    PowerInjection,
    RunEvaluation,
    SolveOutcome,
    StartMode,
)
from nrflow.solver.iteration import IterationStep
from nrflow.solver.linear import DenseLUSolver

logger = logging.getLogger(__name__)


class NewtonRaphsonSolver:
    """Stateful Newton-Raphson power flow solver.

    Parameters
    ----------
    epsilon : float, optional
        Convergence threshold on the active/reactive power mismatch.
    max_iterations : int, optional
        Iteration budget per solve.
    linear_solver : object, optional
        Anything with ``solve(matrix, rhs)`` raising
        :class:`SingularMatrixError` on singular input.
    settings : SolverSettings, optional
        Source of defaults for omitted parameters.
    """

    def __init__(
        self,
        epsilon: float | None = None,
        max_iterations: int | None = None,
        linear_solver=None,
        settings: SolverSettings | None = None,
    ) -> None:
        cfg = settings or default_settings
        self.epsilon = cfg.epsilon if epsilon is None else epsilon
        self.max_iterations = cfg.max_iterations if max_iterations is None else max_iterations
        self.linear_solver = (
            linear_solver if linear_solver is not None
            else DenseLUSolver(pivot_tolerance=cfg.pivot_tolerance)
        )

        self._admittance: NDArray[np.complex128] | None = None
        self._classification: NodeClassification | None = None
        self._target_voltage: NDArray[np.complex128] | None = None
        self._jacobian: NDArray[np.float64] | None = None
        # Set on every admittance change, cleared once a Jacobian is built from it
        self._admittance_changed: bool = False

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    @property
    def epsilon(self) -> float:
        return self._epsilon

    @epsilon.setter
    def epsilon(self, value: float) -> None:
        if not value > 0:
            raise ConfigurationError(f"epsilon must be positive, got {value}")
        self._epsilon = float(value)

    @property
    def max_iterations(self) -> int:
        return self._max_iterations

    @max_iterations.setter
    def max_iterations(self, value: int) -> None:
        if int(value) != value or value < 1:
            raise ConfigurationError(f"max_iterations must be a positive integer, got {value}")
        self._max_iterations = int(value)

    # ------------------------------------------------------------------
    # Network data
    # ------------------------------------------------------------------

    @property
    def node_count(self) -> int:
        return 0 if self._admittance is None else self._admittance.shape[0]

    @property
    def admittance(self) -> NDArray[np.complex128] | None:
        return self._admittance

    def set_admittance(self, matrix) -> None:
        """Replace the admittance matrix and invalidate the cached Jacobian.

        Node types and target voltages are discarded when the number of
        nodes changes and have to be set again.

        Raises:
            ConfigurationError: non-square, NaN or missing entries.
        """
        y_bus = validate_admittance(matrix)
        if self._admittance is not None and y_bus.shape != self._admittance.shape:
            if self._classification is not None or self._target_voltage is not None:
                logger.warning(
                    "Admittance matrix changed from %d to %d nodes. "
                    "Node types and target voltages have to be set again.",
                    self._admittance.shape[0], y_bus.shape[0],
                )
            self._classification = None
            self._target_voltage = None
            self._jacobian = None

        self._admittance = y_bus
        self._admittance_changed = True

    @property
    def admittance_changed(self) -> bool:
        """True until a Jacobian has been built from the current admittance matrix."""
        return self._admittance_changed

    @property
    def jacobian(self) -> NDArray[np.float64] | None:
        """Reduced Jacobian of the most recent iteration."""
        return self._jacobian

    @property
    def classification(self) -> NodeClassification | None:
        return self._classification

    @property
    def node_types(self) -> tuple[NodeType, ...] | None:
        return None if self._classification is None else self._classification.node_types

    def set_node_types(self, node_types) -> NodeClassification:
        """Classify ``node_types`` against the current admittance matrix.

        Raises:
            ConfigurationError: no admittance matrix yet, length mismatch,
                or no slack node.
        """
        if self._admittance is None:
            raise ConfigurationError("Admittance matrix is not set yet. Set it before the node types.")
        self._classification = classify(node_types, self.node_count)
        return self._classification

    @property
    def target_voltage(self) -> NDArray[np.complex128] | None:
        return self._target_voltage

    def set_target_voltage(self, target_voltage) -> None:
        """Set the complex target voltage per node.

        The slack entry is the exact reference voltage; for the other
        nodes only the magnitude is used (by PV nodes).
        """
        if self._admittance is None:
            raise ConfigurationError("Admittance matrix is not set yet. Set it before the target voltages.")
        target = validate_nodal_vector(target_voltage, self.node_count, "target voltage")
        if np.isnan(target).any():
            raise ConfigurationError("The target voltage vector contains NaN values.")
        target.setflags(write=False)
        self._target_voltage = target

    # ------------------------------------------------------------------
    # Solve
    # ------------------------------------------------------------------

    def check_ready(self) -> None:
        """Raise ConfigurationError unless admittance, node types and targets are set."""
        if self._admittance is None:
            raise ConfigurationError("Admittance matrix is not set yet. Invoke set_admittance first.")
        if self._classification is None:
            raise ConfigurationError("Node types are not set yet. Invoke set_node_types first.")
        if self._target_voltage is None:
            raise ConfigurationError("Target voltages are not set yet. Invoke set_target_voltage first.")
        if len(self._classification) != self.node_count:
            raise ConfigurationError(
                f"{len(self._classification)} node types for {self.node_count} nodes."
            )

    def build_injection(self, actual_s, decr_s=None, incr_s=None) -> PowerInjection:
        """Validated power injection; missing capability vectors are zero."""
        n = self.node_count
        actual = validate_nodal_vector(actual_s, n, "nodal power")
        decrease = np.zeros(n, dtype=complex) if decr_s is None else validate_nodal_vector(
            decr_s, n, "power decrease capability")
        increase = np.zeros(n, dtype=complex) if incr_s is None else validate_nodal_vector(
            incr_s, n, "power increase capability")
        return PowerInjection(actual=actual, decrease=decrease, increase=increase)

    def flat_start(self) -> NDArray[np.complex128]:
        """1∠0 at every node."""
        return np.ones(self.node_count, dtype=complex)

    def solve(
        self,
        actual_s,
        decr_s=None,
        incr_s=None,
        start_voltage=None,
        start_mode: StartMode | None = None,
    ) -> PowerFlowResult:
        """Solve the power flow for the nodal power drawn ``actual_s``.

        Args:
            actual_s: complex power per node (consumption positive).
            decr_s, incr_s: adjustment capability per node, carried through.
            start_voltage: initial voltages; flat start when omitted.
            start_mode: label recorded on the evaluation, derived when omitted.

        Returns:
            PowerFlowResult; ``valid`` is False when the iteration budget
            ran out or the linear solve failed.

        Raises:
            ConfigurationError: missing network data or length mismatch.
            InconsistentStateError: NaN in the power mismatch, carrying the
                partial evaluation.
        """
        self.check_ready()
        injection = self.build_injection(actual_s, decr_s, incr_s)
        classification = self._classification
        slack = classification.slack_index

        if start_voltage is None:
            voltage = self.flat_start()
            start_mode = start_mode or StartMode.FLAT
        else:
            voltage = validate_nodal_vector(start_voltage, self.node_count, "start voltage")
            start_mode = start_mode or StartMode.EXPLICIT
        voltage[slack] = self._target_voltage[slack]

        step = IterationStep(
            admittance=self._admittance,
            classification=classification,
            target_voltage=self._target_voltage,
            actual_power=injection.actual,
            epsilon=self._epsilon,
            linear_solver=self.linear_solver,
        )

        start = time.perf_counter()
        evaluations: list[IterationEvaluation] = []
        iterated_power = np.zeros(self.node_count, dtype=complex)
        outcome = SolveOutcome.ITERATION_BUDGET_EXHAUSTED

        for index in range(self._max_iterations):
            try:
                result = step.run(index, voltage)
            except InconsistentStateError as exc:
                partial = self._evaluation(
                    False, evaluations, start, SolveOutcome.SOLVE_FAILED, start_mode,
                )
                raise InconsistentStateError(str(exc), evaluation=partial) from exc

            self._cache_jacobian(result.jacobian)
            evaluations.append(result.evaluation)
            iterated_power = result.iterated_power

            if not result.solved:
                outcome = SolveOutcome.SOLVE_FAILED
                break
            voltage = result.voltage
            if result.converged:
                outcome = SolveOutcome.CONVERGED
                break

        valid = outcome == SolveOutcome.CONVERGED
        evaluation = self._evaluation(valid, evaluations, start, outcome, start_mode)
        log_extra = {
            "iteration": evaluation.iteration_count,
            "epsilon": self._epsilon,
            "duration_ms": evaluation.duration_ms,
            "outcome": outcome.value,
            "start_mode": start_mode.value,
        }
        if valid:
            logger.info(
                "Newton-Raphson power flow converged after %d iterations with epsilon = %g",
                evaluation.iteration_count, self._epsilon, extra=log_extra,
            )
        else:
            logger.info(
                "Newton-Raphson power flow did NOT converge after %d iterations "
                "with epsilon = %g (%s)",
                evaluation.iteration_count, self._epsilon, outcome.value, extra=log_extra,
            )

        return PowerFlowResult(
            valid=valid,
            voltage=voltage,
            iterated_power=iterated_power,
            slack_power=complex(iterated_power[slack]),
            evaluation=evaluation,
            injection=injection,
        )

    def _cache_jacobian(self, jacobian: NDArray[np.float64]) -> None:
        self._jacobian = jacobian
        self._admittance_changed = False

    def _evaluation(
        self,
        successful: bool,
        evaluations: list[IterationEvaluation],
        start: float,
        outcome: SolveOutcome,
        start_mode: StartMode,
    ) -> RunEvaluation:
        return RunEvaluation(
            successful=successful,
            iterations=tuple(evaluations),
            epsilon=self._epsilon,
            duration_ms=round((time.perf_counter() - start) * 1000, 3),
            outcome=outcome,
            start_mode=start_mode,
        )
