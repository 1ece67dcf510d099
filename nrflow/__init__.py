"""Newton-Raphson AC power flow for repeated solves on a fixed network.

Provides node classification, the reduced rectangular-coordinate
Jacobian, the iteration driver and a warm-start policy that reuses the
last solved state.
"""

from nrflow.core.exceptions import (
    ConfigurationError,
    InconsistentStateError,
    PowerFlowError,
    SingularMatrixError,
)
from nrflow.core.logging import setup_logging
from nrflow.network import NodeClassification, NodeType, classify
from nrflow.solver import (
    IterationEvaluation,
    NewtonRaphsonSolver,
    PowerFlowResult,
    RunEvaluation,
    SolveOutcome,
    StartMode,
    WarmStartPolicy,
)

__all__ = [
    "ConfigurationError",
    "InconsistentStateError",
    "IterationEvaluation",
    "NewtonRaphsonSolver",
    "NodeClassification",
    "NodeType",
    "PowerFlowError",
    "PowerFlowResult",
    "RunEvaluation",
    "SingularMatrixError",
    "SolveOutcome",
    "StartMode",
    "WarmStartPolicy",
    "classify",
    "setup_logging",
]
