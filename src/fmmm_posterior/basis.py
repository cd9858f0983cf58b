from __future__ import annotations

from typing import Protocol

import numpy as np
from scipy.interpolate import BSpline


class BasisEvaluator(Protocol):
    def __call__(self, time: np.ndarray, n_basis: int) -> np.ndarray: ...


def bspline_knots(time: np.ndarray, n_basis: int, *, degree: int = 3) -> np.ndarray:
    """Full knot vector of a B-spline basis with intercept over the range of `time`.

    Boundary knots sit at min/max of `time` (each repeated degree+1 times) and the
    n_basis - degree - 1 interior knots at equally spaced quantiles of `time`.
    """
    x = np.asarray(time, dtype=float)
    if x.ndim != 1 or x.size == 0:
        raise ValueError("time must be a non-empty 1D array.")
    if not np.all(np.isfinite(x)):
        raise ValueError("time must be finite.")
    degree = int(degree)
    if degree < 0:
        raise ValueError("degree must be non-negative.")
    if int(n_basis) < degree + 1:
        raise ValueError(f"n_basis must be at least degree+1={degree + 1}.")
    lo, hi = float(np.min(x)), float(np.max(x))
    if not hi > lo:
        raise ValueError("time grid must span a positive range.")

    n_interior = int(n_basis) - degree - 1
    probs = np.linspace(0.0, 1.0, n_interior + 2)[1:-1]
    interior = np.quantile(x, probs) if n_interior > 0 else np.empty(0)
    return np.concatenate([np.full(degree + 1, lo), interior, np.full(degree + 1, hi)])


def bspline_basis(time: np.ndarray, n_basis: int, *, degree: int = 3) -> np.ndarray:
    """Evaluate a cubic (by default) B-spline basis with intercept at `time`.

    Returns an (len(time), n_basis) matrix; rows are observed points and columns
    basis functions. Rows sum to one on the closed interval [min(time), max(time)].
    """
    x = np.asarray(time, dtype=float)
    t = bspline_knots(x, n_basis, degree=degree)
    B = BSpline.design_matrix(x, t, int(degree)).toarray()
    return np.asarray(B, dtype=float)


def evaluate_basis(basis: BasisEvaluator, time: np.ndarray, n_basis: int) -> np.ndarray:
    """Call an external basis evaluator and check the shape of what it returns."""
    x = np.asarray(time, dtype=float)
    if x.ndim != 1:
        raise ValueError("time must be 1D.")
    B = np.asarray(basis(x, int(n_basis)), dtype=float)
    if B.shape != (x.size, int(n_basis)):
        raise ValueError(f"Basis evaluator returned shape {B.shape}, expected {(x.size, int(n_basis))}.")
    return B
