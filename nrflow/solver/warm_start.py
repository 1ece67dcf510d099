"""Warm start for repeated power flow solves on the same network.

After a solve, the last voltages, the last nodal power and the solver's
last Jacobian describe a linearization around a known operating point.
For a slightly changed power situation one Newton step from that point,
using the cached Jacobian, gives a start vector much closer to the new
solution than a flat start.

Reuse requires all of:
  - a cached Jacobian built from the current admittance matrix
  - a last known state solved on the current admittance matrix and node types
  - no forced flat start and no caller supplied start voltage

Guards (relative to the last known state):
  - power deviation above threshold at any node      → flat start
  - predicted magnitude deviation above threshold    → flat start
  - predicted angle deviation above threshold        → warning only
"""

from __future__ import annotations

import logging

import numpy as np
from numpy.typing import NDArray

from nrflow.config import SolverSettings, settings as default_settings
from nrflow.core.exceptions import ConfigurationError, SingularMatrixError
from nrflow.network.node_types import NodeClassification
from nrflow.solver.deviation import apply_correction_to_voltages, reduce_deviation_vector
from nrflow.solver.evaluation import PowerFlowResult, PowerInjection, StartMode
from nrflow.solver.newton_raphson import NewtonRaphsonSolver

logger = logging.getLogger(__name__)


def relative_power_deviation(
    delta_s: NDArray[np.complex128],
    last_power: NDArray[np.complex128],
    classification: NodeClassification,
    floor: float = 0.0,
) -> NDArray[np.float64]:
    """|ΔS| / |S_last| per node over the fixed quantities.

    The slack node is skipped (its power is a result) and PV nodes are
    compared on active power only. Deviations below ``floor`` count as
    zero; a non-zero deviation on a node whose last power was zero is +inf.
    """
    num = np.abs(delta_s)
    den = np.abs(last_power)
    pv = classification.pv_indices
    num[pv] = np.abs(delta_s[pv].real)
    den[pv] = np.abs(last_power[pv].real)
    num[classification.slack_index] = 0.0

    ratio = np.zeros(num.shape[0])
    significant = (num > 0.0) & (num >= floor)
    significant[classification.slack_index] = False
    with np.errstate(divide="ignore"):
        ratio[significant] = num[significant] / den[significant]
    return ratio


def relative_change(
    new: NDArray[np.float64],
    old: NDArray[np.float64],
) -> NDArray[np.float64]:
    """|new / old - 1| per entry; +inf where ``old`` is zero and ``new`` is not."""
    ratio = np.zeros(new.shape[0])
    nonzero = old != 0.0
    ratio[nonzero] = np.abs(new[nonzero] / old[nonzero] - 1.0)
    ratio[~nonzero & (new != 0.0)] = np.inf
    return ratio


class WarmStartPolicy:
    """Seeds each solve of a :class:`NewtonRaphsonSolver` from the previous one.

    The wrapped solver is only used through its public interface; any
    solver exposing the same attributes can be substituted.

    Parameters
    ----------
    solver : NewtonRaphsonSolver, optional
        Solver holding the network; a new one is created when omitted.
    power_deviation_threshold : float, optional
        Relative nodal power change above which a flat start is forced.
    voltage_deviation_threshold : float, optional
        Relative predicted magnitude change above which a flat start is forced.
    angle_deviation_threshold : float, optional
        Relative predicted angle change above which a warning is logged.
    settings : SolverSettings, optional
        Source of defaults for omitted thresholds.
    """

    def __init__(
        self,
        solver: NewtonRaphsonSolver | None = None,
        power_deviation_threshold: float | None = None,
        voltage_deviation_threshold: float | None = None,
        angle_deviation_threshold: float | None = None,
        settings: SolverSettings | None = None,
    ) -> None:
        cfg = settings or default_settings
        self.solver = solver if solver is not None else NewtonRaphsonSolver(settings=cfg)
        self.power_deviation_threshold = _positive(
            "power_deviation_threshold",
            cfg.power_deviation_threshold if power_deviation_threshold is None
            else power_deviation_threshold,
        )
        self.voltage_deviation_threshold = _positive(
            "voltage_deviation_threshold",
            cfg.voltage_deviation_threshold if voltage_deviation_threshold is None
            else voltage_deviation_threshold,
        )
        self.angle_deviation_threshold = _positive(
            "angle_deviation_threshold",
            cfg.angle_deviation_threshold if angle_deviation_threshold is None
            else angle_deviation_threshold,
        )

        self._last_power: NDArray[np.complex128] | None = None
        self._last_voltage: NDArray[np.complex128] | None = None
        # Network the last known state was solved on
        self._last_admittance = None
        self._last_classification = None
        self.diagnostics: list[str] = []

    @property
    def last_iterated_power(self) -> NDArray[np.complex128] | None:
        return self._last_power

    @property
    def last_voltage(self) -> NDArray[np.complex128] | None:
        return self._last_voltage

    def reset(self) -> None:
        """Forget the last known state; the next solve starts flat."""
        self._last_power = None
        self._last_voltage = None
        self._last_admittance = None
        self._last_classification = None

    def can_reuse(self, start_voltage=None, force_flat_start: bool = False) -> bool:
        """Whether the next solve may be seeded from the last known state."""
        n = self.solver.node_count
        return (
            self.solver.jacobian is not None
            and not self.solver.admittance_changed
            and self.solver.admittance is self._last_admittance
            and self.solver.classification is self._last_classification
            and self._last_power is not None
            and self._last_power.shape[0] == n
            and self._last_voltage is not None
            and self._last_voltage.shape[0] == n
            and not force_flat_start
            and start_voltage is None
        )

    def solve(
        self,
        actual_s,
        decr_s=None,
        incr_s=None,
        start_voltage=None,
        force_flat_start: bool = False,
    ) -> PowerFlowResult:
        """Solve, reusing the last known state when eligible and plausible.

        Guard trips fall back to a flat start and are recorded in
        :attr:`diagnostics`; they never raise.
        """
        self.solver.check_ready()
        injection = self.solver.build_injection(actual_s, decr_s, incr_s)

        if self.can_reuse(start_voltage, force_flat_start):
            result = self._solve_warm(injection)
        else:
            logger.debug("Cannot reuse the last known system state, solving from scratch")
            result = self._solve_cold(
                injection, None if force_flat_start else start_voltage,
            )

        self._last_power = np.array(result.iterated_power, copy=True)
        self._last_voltage = np.array(result.voltage, copy=True)
        self._last_admittance = self.solver.admittance
        self._last_classification = self.solver.classification
        return result

    def _solve_cold(
        self,
        injection: PowerInjection,
        start_voltage=None,
        start_mode: StartMode | None = None,
    ) -> PowerFlowResult:
        return self.solver.solve(
            injection.actual, injection.decrease, injection.increase,
            start_voltage=start_voltage, start_mode=start_mode,
        )

    def _fallback(self, injection: PowerInjection, reason: StartMode, message: str) -> PowerFlowResult:
        logger.warning(message, extra={"start_mode": reason.value})
        self.diagnostics.append(message)
        return self._solve_cold(injection, start_mode=reason)

    def predict_start_voltage(self, injection: PowerInjection) -> NDArray[np.complex128]:
        """One Newton step from the last known state with the cached Jacobian.

        Raises:
            SingularMatrixError: the cached Jacobian cannot be factorized.
        """
        classification = self.solver.classification
        delta_s = injection.actual + self._last_power
        target_v2 = np.abs(self.solver.target_voltage) ** 2
        delta_v2 = np.abs(self._last_voltage) ** 2 - target_v2
        deviation = reduce_deviation_vector(delta_s, delta_v2, classification)
        correction = self.solver.linear_solver.solve(self.solver.jacobian, deviation.values)
        return apply_correction_to_voltages(self._last_voltage, correction, classification)

    def _solve_warm(self, injection: PowerInjection) -> PowerFlowResult:
        classification = self.solver.classification
        delta_s = injection.actual + self._last_power
        power_ratio = relative_power_deviation(
            delta_s, self._last_power, classification, floor=self.solver.epsilon,
        )
        if (power_ratio >= self.power_deviation_threshold).any():
            node = int(np.argmax(power_ratio))
            return self._fallback(
                injection, StartMode.FALLBACK_POWER_DEVIATION,
                f"Nodal power at node {node} deviates {power_ratio[node]:.1%} from the "
                f"last solved state (threshold {self.power_deviation_threshold:.1%}). "
                "Forcing a flat start.",
            )

        try:
            prediction = self.predict_start_voltage(injection)
        except SingularMatrixError:
            return self._fallback(
                injection, StartMode.FALLBACK_SINGULAR_PREDICTION,
                "Cached Jacobian matrix is singular, cannot predict a start voltage. "
                "Forcing a flat start.",
            )

        last_angle = np.angle(self._last_voltage)
        angle_ratio = relative_change(np.angle(prediction), last_angle)
        angle_ratio[last_angle == 0.0] = 0.0
        if (angle_ratio > self.angle_deviation_threshold).any():
            node = int(np.argmax(angle_ratio))
            message = (
                f"Predicted voltage angle at node {node} deviates {angle_ratio[node]:.1%} "
                f"from the last solved state (threshold {self.angle_deviation_threshold:.1%})."
            )
            logger.warning(message, extra={"start_mode": StartMode.WARM.value})
            self.diagnostics.append(message)

        magnitude_ratio = relative_change(np.abs(prediction), np.abs(self._last_voltage))
        if (magnitude_ratio > self.voltage_deviation_threshold).any():
            node = int(np.argmax(magnitude_ratio))
            return self._fallback(
                injection, StartMode.FALLBACK_VOLTAGE_DEVIATION,
                f"Predicted voltage magnitude at node {node} deviates "
                f"{magnitude_ratio[node]:.1%} from the last solved state "
                f"(threshold {self.voltage_deviation_threshold:.1%}). Forcing a flat start.",
            )

        logger.debug("Reusing the last known system state as start voltage")
        return self._solve_cold(injection, start_voltage=prediction, start_mode=StartMode.WARM)


def _positive(name: str, value: float) -> float:
    if not value > 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return float(value)
