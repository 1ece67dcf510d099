"""Validation of solver inputs: admittance matrix and nodal vectors.

The admittance matrix itself is built elsewhere (from a topology model);
here it is only checked to be a complete, finite, square complex matrix.
"""

from __future__ import annotations

import numpy as np

from nrflow.core.exceptions import ConfigurationError


def _as_array(values, name: str) -> np.ndarray:
    try:
        return np.asarray(values)
    except ValueError as exc:
        # ragged nested sequences
        raise ConfigurationError(f"The {name} has inconsistent dimensions: {exc}") from exc


def _has_missing(values: np.ndarray) -> bool:
    if values.dtype != object:
        return False
    return any(v is None for v in values.ravel())


def validate_admittance(matrix) -> np.ndarray:
    """Return a read-only complex copy of ``matrix``.

    Raises:
        ConfigurationError: not a square 2-D matrix, missing entries, or NaN.
    """
    raw = _as_array(matrix, "admittance matrix")
    if _has_missing(raw):
        raise ConfigurationError("The admittance matrix contains missing (None) entries.")
    try:
        y_bus = np.array(raw, dtype=complex)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"The admittance matrix is not numeric: {exc}") from exc

    if y_bus.ndim != 2 or y_bus.shape[0] != y_bus.shape[1]:
        raise ConfigurationError(
            f"The admittance matrix has shape {y_bus.shape}. Has to be a NxN matrix."
        )
    if y_bus.shape[0] == 0:
        raise ConfigurationError("The admittance matrix is empty.")
    if np.isnan(y_bus).any():
        raise ConfigurationError("The admittance matrix contains NaN values.")

    y_bus.setflags(write=False)
    return y_bus


def validate_nodal_vector(values, node_count: int, name: str) -> np.ndarray:
    """Complex copy of a per-node vector, checked for length and missing entries."""
    raw = _as_array(values, f"{name} vector")
    if _has_missing(raw):
        raise ConfigurationError(f"The {name} vector contains missing (None) entries.")
    try:
        vector = np.array(raw, dtype=complex).ravel()
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"The {name} vector is not numeric: {exc}") from exc
    if vector.shape[0] != node_count:
        raise ConfigurationError(
            f"The {name} vector has {vector.shape[0]} entries, "
            f"but the admittance matrix covers {node_count} nodes."
        )
    return vector
