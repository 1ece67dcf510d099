"""Newton-Raphson power flow engine with Jacobian, iteration step, solver and warm start."""

from .deviation import (
    DeviationVector,
    apply_correction_to_voltages,
    nodal_power,
    reduce_deviation_vector,
)
from .evaluation import (
    IterationEvaluation,
    PowerFlowResult,
    PowerInjection,
    RunEvaluation,
    SolveOutcome,
    StartMode,
)
from .iteration import IterationStep, IterationStepResult
from .jacobian import build_jacobian_blocks, build_reduced_jacobian, reduce_jacobian
from .linear import DenseLUSolver
from .newton_raphson import NewtonRaphsonSolver
from .warm_start import WarmStartPolicy

__all__ = [
    "DenseLUSolver",
    "DeviationVector",
    "IterationEvaluation",
    "IterationStep",
    "IterationStepResult",
    "NewtonRaphsonSolver",
    "PowerFlowResult",
    "PowerInjection",
    "RunEvaluation",
    "SolveOutcome",
    "StartMode",
    "WarmStartPolicy",
    "apply_correction_to_voltages",
    "build_jacobian_blocks",
    "build_reduced_jacobian",
    "nodal_power",
    "reduce_deviation_vector",
    "reduce_jacobian",
]
