"""Fitted means of the mixed-membership model for one posterior draw.

Public functions take 1-based subject indices, like the rest of the query API.
"""

from __future__ import annotations

import numpy as np

from .observations import FunctionalObservations, MultivariateObservations, Observations
from .samples import PosteriorDraw, to_zero_based


def _covariate_row(draw: PosteriorDraw, covariates) -> np.ndarray | None:
    if covariates is None:
        if draw.covariate_adjusted:
            raise ValueError("Covariate-adjusted draw requires a covariate row.")
        return None
    if not draw.covariate_adjusted:
        raise ValueError("A covariate row was given but the draw has no eta/xi effects.")
    x = np.asarray(covariates, dtype=float)
    if x.shape != (draw.n_covariates,):
        raise ValueError(f"covariate row has shape {x.shape}, expected ({draw.n_covariates},).")
    return x


def _subject_coefficients(
    draw: PosteriorDraw,
    row: int,
    covariates=None,
    *,
    skip_zero_membership: bool = True,
) -> np.ndarray:
    # `row` is a 0-based row of draw.z / draw.chi.
    x = _covariate_row(draw, covariates)
    z_row = draw.z[row]
    chi_row = draw.chi[row]
    if skip_zero_membership:
        clusters = np.flatnonzero(z_row != 0.0)
    else:
        clusters = np.arange(draw.n_clusters)

    coef = np.zeros(draw.n_basis, dtype=float)
    for k in clusters:
        mean_k = draw.nu[k]
        comp_k = draw.phi[k]
        if x is not None:
            mean_k = mean_k + draw.eta[k] @ x
            comp_k = comp_k + draw.xi[k] @ x
        coef += z_row[k] * (mean_k + comp_k @ chi_row)
    return coef


def _basis_row(draw: PosteriorDraw, basis_row) -> np.ndarray:
    b = np.asarray(basis_row, dtype=float)
    if b.shape != (draw.n_basis,):
        raise ValueError(f"basis row has shape {b.shape}, expected ({draw.n_basis},).")
    return b


def _basis_matrix(draw: PosteriorDraw, basis_matrix) -> np.ndarray:
    B = np.asarray(basis_matrix, dtype=float)
    if B.ndim != 2 or B.shape[1] != draw.n_basis:
        raise ValueError(f"basis matrix has shape {B.shape}, expected (L, {draw.n_basis}).")
    return B


def subject_coefficients(
    draw: PosteriorDraw,
    subject: int,
    covariates=None,
    *,
    skip_zero_membership: bool = True,
) -> np.ndarray:
    """Membership-weighted coefficient vector (length P) of one subject.

    Sums, over clusters k,
        Z[i,k] * (nu[k] + eta[k] x + sum_n chi[i,n] (phi[k,:,n] + xi[k,:,n,:] x)).
    `subject` is 1-based. Clusters with exactly zero weight are skipped when
    `skip_zero_membership` is set; the sum is the same either way.
    """
    i = to_zero_based(subject, draw.n_subjects, kind="subject")
    return _subject_coefficients(draw, i, covariates, skip_zero_membership=skip_zero_membership)


def mean_at(
    draw: PosteriorDraw,
    subject: int,
    basis_row: np.ndarray,
    covariates=None,
    *,
    skip_zero_membership: bool = True,
) -> float:
    """Fitted mean of one subject at one observed point (one row of its basis matrix)."""
    b = _basis_row(draw, basis_row)
    return float(b @ subject_coefficients(draw, subject, covariates, skip_zero_membership=skip_zero_membership))


def functional_mean(
    draw: PosteriorDraw,
    subject: int,
    basis_matrix: np.ndarray,
    covariates=None,
    *,
    skip_zero_membership: bool = True,
) -> np.ndarray:
    """Fitted mean curve of one subject at every row of its (L, P) basis matrix."""
    B = _basis_matrix(draw, basis_matrix)
    return B @ subject_coefficients(draw, subject, covariates, skip_zero_membership=skip_zero_membership)


def multivariate_mean(
    draw: PosteriorDraw,
    subject: int,
    covariates=None,
    *,
    skip_zero_membership: bool = True,
) -> np.ndarray:
    """Fitted mean vector of one subject; the coefficients are the observed coordinates."""
    return subject_coefficients(draw, subject, covariates, skip_zero_membership=skip_zero_membership)


def fitted_means(
    draw: PosteriorDraw,
    observations: Observations,
    *,
    skip_zero_membership: bool = True,
) -> list[np.ndarray]:
    """Fitted means for every subject, shaped like the observed values."""
    if observations.n_subjects != draw.n_subjects:
        raise ValueError(
            f"observations cover {observations.n_subjects} subjects but the draw has {draw.n_subjects}."
        )
    X = observations.covariates if draw.covariate_adjusted else None
    if draw.covariate_adjusted and X is None:
        raise ValueError("Covariate-adjusted draw requires observations with covariates.")

    out = []
    if isinstance(observations, FunctionalObservations):
        if observations.basis is None:
            raise ValueError("FunctionalObservations need basis matrices; call with_basis(n_basis) first.")
        for i, B in enumerate(observations.basis):
            x = None if X is None else X[i]
            coef = _subject_coefficients(draw, i, x, skip_zero_membership=skip_zero_membership)
            out.append(_basis_matrix(draw, B) @ coef)
    elif isinstance(observations, MultivariateObservations):
        if observations.n_dims != draw.n_basis:
            raise ValueError(f"observed vectors have {observations.n_dims} coordinates, draw has {draw.n_basis}.")
        for i in range(observations.n_subjects):
            x = None if X is None else X[i]
            out.append(_subject_coefficients(draw, i, x, skip_zero_membership=skip_zero_membership))
    else:
        raise TypeError(f"Unsupported observations type: {type(observations).__name__}")
    return out
