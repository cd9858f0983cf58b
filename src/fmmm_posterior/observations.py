from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from .basis import BasisEvaluator, bspline_basis, evaluate_basis


def _covariate_matrix(covariates, n_subjects: int) -> np.ndarray | None:
    if covariates is None:
        return None
    X = np.asarray(covariates, dtype=float)
    if X.ndim != 2 or X.shape[0] != n_subjects:
        raise ValueError(f"covariates must have shape (n_subjects={n_subjects}, C), got {X.shape}.")
    if not np.all(np.isfinite(X)):
        raise ValueError("covariates must be finite.")
    return X


@dataclass(frozen=True)
class FunctionalObservations:
    """Irregularly sampled curves: per subject, observed times and values.

    `basis` optionally holds one precomputed (L_i, P) basis matrix per subject;
    otherwise call `with_basis` before evaluating likelihoods.
    """

    times: tuple[np.ndarray, ...]
    values: tuple[np.ndarray, ...]
    covariates: np.ndarray | None = None
    basis: tuple[np.ndarray, ...] | None = None

    def __post_init__(self) -> None:
        times = tuple(np.asarray(t, dtype=float) for t in self.times)
        values = tuple(np.asarray(y, dtype=float) for y in self.values)
        if len(times) == 0:
            raise ValueError("At least one subject is required.")
        if len(times) != len(values):
            raise ValueError("times and values must list the same number of subjects.")
        for i, (t, y) in enumerate(zip(times, values, strict=True)):
            if t.ndim != 1 or y.ndim != 1 or t.shape != y.shape:
                raise ValueError(f"subject {i + 1}: times and values must be 1D with the same length.")
            if t.size == 0:
                raise ValueError(f"subject {i + 1}: no observed points.")
        object.__setattr__(self, "times", times)
        object.__setattr__(self, "values", values)
        object.__setattr__(self, "covariates", _covariate_matrix(self.covariates, len(times)))
        if self.basis is not None:
            basis = tuple(np.asarray(B, dtype=float) for B in self.basis)
            if len(basis) != len(times):
                raise ValueError("basis must hold one matrix per subject.")
            P = basis[0].shape[1] if basis[0].ndim == 2 else -1
            for i, (B, t) in enumerate(zip(basis, times, strict=True)):
                if B.shape != (t.size, P):
                    raise ValueError(f"subject {i + 1}: basis matrix shape {B.shape}, expected {(t.size, P)}.")
            object.__setattr__(self, "basis", basis)

    @classmethod
    def from_lists(
        cls,
        times: Sequence[Sequence[float]],
        values: Sequence[Sequence[float]],
        *,
        covariates=None,
    ) -> "FunctionalObservations":
        return cls(times=tuple(times), values=tuple(values), covariates=covariates)

    @property
    def n_subjects(self) -> int:
        return len(self.times)

    @property
    def n_points(self) -> int:
        return int(sum(t.size for t in self.times))

    @property
    def n_basis(self) -> int | None:
        return None if self.basis is None else int(self.basis[0].shape[1])

    def basis_matrices(self, n_basis: int, *, basis: BasisEvaluator = bspline_basis) -> tuple[np.ndarray, ...]:
        """One basis matrix per subject, evaluated on that subject's own times."""
        return tuple(evaluate_basis(basis, t, int(n_basis)) for t in self.times)

    def with_basis(self, n_basis: int, *, basis: BasisEvaluator = bspline_basis) -> "FunctionalObservations":
        return FunctionalObservations(
            times=self.times,
            values=self.values,
            covariates=self.covariates,
            basis=self.basis_matrices(n_basis, basis=basis),
        )


@dataclass(frozen=True)
class MultivariateObservations:
    """One fixed-length observed vector per subject, stored as an (I, D) matrix."""

    values: np.ndarray
    covariates: np.ndarray | None = None

    def __post_init__(self) -> None:
        Y = np.asarray(self.values, dtype=float)
        if Y.ndim != 2 or Y.shape[0] == 0 or Y.shape[1] == 0:
            raise ValueError(f"values must be a non-empty (I, D) matrix, got shape {Y.shape}.")
        object.__setattr__(self, "values", Y)
        object.__setattr__(self, "covariates", _covariate_matrix(self.covariates, Y.shape[0]))

    @property
    def n_subjects(self) -> int:
        return int(self.values.shape[0])

    @property
    def n_dims(self) -> int:
        return int(self.values.shape[1])

    @property
    def n_points(self) -> int:
        return self.n_subjects


Observations = FunctionalObservations | MultivariateObservations
