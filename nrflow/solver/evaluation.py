"""Result and evaluation records of a power flow solve."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

import numpy as np
from numpy.typing import NDArray


class SolveOutcome(str, Enum):
    CONVERGED = "converged"
    ITERATION_BUDGET_EXHAUSTED = "iteration_budget_exhausted"
    SOLVE_FAILED = "solve_failed"


class StartMode(str, Enum):
    """How the initial voltage vector of a solve was chosen."""
    FLAT = "flat"
    EXPLICIT = "explicit"
    WARM = "warm"
    FALLBACK_POWER_DEVIATION = "fallback_power_deviation"
    FALLBACK_VOLTAGE_DEVIATION = "fallback_voltage_deviation"
    FALLBACK_SINGULAR_PREDICTION = "fallback_singular_prediction"


def _frozen(values: NDArray) -> NDArray:
    arr = np.array(values, copy=True)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class IterationEvaluation:
    """Infinity norms of one Newton-Raphson iteration.

    ``delta_v2_max`` is +inf when the network has no PV nodes. A failed
    linear solve leaves every norm at +inf.
    """
    index: int
    successful: bool
    delta_p_max: float = math.inf
    delta_q_max: float = math.inf
    delta_v2_max: float = math.inf
    delta_e_max: float = math.inf
    delta_f_max: float = math.inf

    @classmethod
    def failed(cls, index: int) -> IterationEvaluation:
        return cls(index=index, successful=False)


@dataclass(frozen=True)
class RunEvaluation:
    """Trace of a complete solve."""
    successful: bool
    iterations: tuple[IterationEvaluation, ...]
    epsilon: float
    duration_ms: float
    outcome: SolveOutcome
    start_mode: StartMode = StartMode.FLAT

    @property
    def iteration_count(self) -> int:
        return len(self.iterations)

    @property
    def final_iteration(self) -> IterationEvaluation | None:
        return self.iterations[-1] if self.iterations else None


@dataclass(frozen=True, eq=False)
class PowerInjection:
    """Per-node apparent power and its adjustment capability.

    ``decrease`` and ``increase`` are carried along with the result but
    do not enter the Newton-Raphson equations.
    """
    actual: NDArray[np.complex128]
    decrease: NDArray[np.complex128]
    increase: NDArray[np.complex128]

    def __post_init__(self) -> None:
        object.__setattr__(self, "actual", _frozen(self.actual))
        object.__setattr__(self, "decrease", _frozen(self.decrease))
        object.__setattr__(self, "increase", _frozen(self.increase))

    @property
    def node_count(self) -> int:
        return self.actual.shape[0]


@dataclass(frozen=True, eq=False)
class PowerFlowResult:
    """Outcome of one solve call.

    ``iterated_power`` is the nodal power evaluated in the last iteration,
    ``slack_power`` its entry at the slack node.
    """
    valid: bool
    voltage: NDArray[np.complex128]
    iterated_power: NDArray[np.complex128]
    slack_power: complex
    evaluation: RunEvaluation
    injection: PowerInjection | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "voltage", _frozen(self.voltage))
        object.__setattr__(self, "iterated_power", _frozen(self.iterated_power))

    @property
    def iterations(self) -> int:
        return self.evaluation.iteration_count

    @property
    def outcome(self) -> SolveOutcome:
        return self.evaluation.outcome

    @property
    def voltage_magnitude(self) -> NDArray[np.float64]:
        return np.abs(self.voltage)

    @property
    def voltage_angle_rad(self) -> NDArray[np.float64]:
        return np.angle(self.voltage)
