"""Dense linear system solver used for the Newton-Raphson correction step.

The solver core only relies on ``solve(matrix, rhs) -> x`` raising
:class:`SingularMatrixError` for matrices that cannot be factorized, so
any object with that method can be handed to the solver instead.
"""

from __future__ import annotations

import warnings

import numpy as np
import scipy.linalg
from numpy.typing import NDArray

from nrflow.config import settings
from nrflow.core.exceptions import ConfigurationError, SingularMatrixError


class DenseLUSolver:
    """LU factorization with partial pivoting (LAPACK getrf/getrs).

    Parameters
    ----------
    pivot_tolerance : float
        A matrix is treated as singular when its smallest absolute pivot
        is below ``pivot_tolerance`` times its largest absolute pivot.
    """

    def __init__(self, pivot_tolerance: float | None = None) -> None:
        if pivot_tolerance is None:
            pivot_tolerance = settings.pivot_tolerance
        if pivot_tolerance < 0:
            raise ConfigurationError(f"pivot_tolerance must be >= 0, got {pivot_tolerance}")
        self.pivot_tolerance: float = pivot_tolerance

    def factorize(self, matrix: NDArray[np.float64]) -> tuple[NDArray[np.float64], NDArray[np.int32]]:
        """LU factors of a real square matrix.

        Raises:
            SingularMatrixError: non-square, non-finite, or (near) singular.
        """
        a = np.asarray(matrix, dtype=np.float64)
        if a.ndim != 2 or a.shape[0] != a.shape[1]:
            raise SingularMatrixError(f"Expected a square matrix, got shape {a.shape}")
        if not np.isfinite(a).all():
            raise SingularMatrixError("Matrix contains non-finite entries")

        with warnings.catch_warnings():
            # Exactly-zero pivots are reported below instead
            warnings.simplefilter("ignore", scipy.linalg.LinAlgWarning)
            lu, piv = scipy.linalg.lu_factor(a, check_finite=False)

        pivots = np.abs(np.diag(lu))
        largest = float(pivots.max())
        if largest == 0.0 or float(pivots.min()) <= self.pivot_tolerance * largest:
            raise SingularMatrixError(
                f"Matrix is singular: smallest pivot {float(pivots.min()):.3e}, "
                f"largest pivot {largest:.3e}"
            )
        return lu, piv

    def solve(self, matrix: NDArray[np.float64], rhs: NDArray[np.float64]) -> NDArray[np.float64]:
        """Solve ``matrix @ x = rhs``."""
        b = np.asarray(rhs, dtype=np.float64)
        if b.shape[0] == 0:
            return np.zeros(0)
        if np.asarray(matrix).shape[0] != b.shape[0]:
            raise ValueError(
                f"Dimension mismatch: matrix {np.asarray(matrix).shape}, rhs {b.shape}"
            )
        lu, piv = self.factorize(matrix)
        return scipy.linalg.lu_solve((lu, piv), b, check_finite=False)
