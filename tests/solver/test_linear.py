"""Tests for nrflow.solver.linear."""

from __future__ import annotations

import numpy as np
import pytest

from nrflow.core.exceptions import ConfigurationError, SingularMatrixError
from nrflow.solver.linear import DenseLUSolver


class TestDenseLUSolver:
    def test_solves_regular_system(self):
        a = np.array([[4.0, 1.0], [2.0, 3.0]])
        b = np.array([1.0, 2.0])
        x = DenseLUSolver().solve(a, b)
        np.testing.assert_allclose(a @ x, b)

    def test_singular_matrix_raises(self):
        a = np.array([[1.0, 2.0], [2.0, 4.0]])
        with pytest.raises(SingularMatrixError):
            DenseLUSolver().solve(a, np.ones(2))

    def test_zero_matrix_raises(self):
        with pytest.raises(SingularMatrixError):
            DenseLUSolver().solve(np.zeros((3, 3)), np.ones(3))

    def test_non_finite_raises(self):
        a = np.array([[1.0, np.inf], [0.0, 1.0]])
        with pytest.raises(SingularMatrixError, match="non-finite"):
            DenseLUSolver().factorize(a)

    def test_non_square_raises(self):
        with pytest.raises(SingularMatrixError, match="square"):
            DenseLUSolver().factorize(np.ones((2, 3)))

    def test_dimension_mismatch(self):
        with pytest.raises(ValueError, match="Dimension mismatch"):
            DenseLUSolver().solve(np.eye(3), np.ones(2))

    def test_empty_system(self):
        x = DenseLUSolver().solve(np.zeros((0, 0)), np.zeros(0))
        assert x.shape == (0,)

    def test_pivot_tolerance(self):
        a = np.array([[1.0, 0.0], [0.0, 1e-10]])
        DenseLUSolver(pivot_tolerance=1e-14).solve(a, np.ones(2))
        with pytest.raises(SingularMatrixError):
            DenseLUSolver(pivot_tolerance=1e-8).solve(a, np.ones(2))

    def test_negative_tolerance_rejected(self):
        with pytest.raises(ConfigurationError):
            DenseLUSolver(pivot_tolerance=-1.0)
