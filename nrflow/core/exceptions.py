"""Error taxonomy of the power flow solver.

Non-convergence is not an error here: running out of iterations is a
normal outcome reported through ``PowerFlowResult.valid``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from nrflow.solver.evaluation import RunEvaluation


class PowerFlowError(Exception):
    """Base class for all solver errors."""


class ConfigurationError(PowerFlowError, ValueError):
    """Missing or malformed admittance matrix, node types or vectors."""


class SingularMatrixError(PowerFlowError):
    """The linear solver could not factorize the given matrix."""


class InconsistentStateError(PowerFlowError):
    """An internal invariant was violated during a solve.

    ``evaluation`` holds the partial run trace up to the failure, if one
    was recorded.
    """

    def __init__(self, message: str, evaluation: RunEvaluation | None = None) -> None:
        super().__init__(message)
        self.evaluation = evaluation
