from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from scipy.stats import norm

from .basis import bspline_basis
from .errors import DomainError
from .observations import FunctionalObservations, MultivariateObservations, Observations
from .reconstruction import fitted_means, mean_at, multivariate_mean
from .samples import PosteriorDraw, to_zero_based


def check_variance(sigma: float, *, draw_index: int | None = None) -> float:
    s = float(sigma)
    if not (np.isfinite(s) and s > 0.0):
        raise DomainError(
            f"Residual variance must be positive and finite, got {s!r}.",
            parameter="sigma",
            coordinate=None if draw_index is None else (int(draw_index),),
        )
    return s


@dataclass(frozen=True)
class MixedMembershipLogLike:
    """Gaussian observation model of the functional/multivariate mixed-membership model.

    Functional data: y_i(t_l) ~ N(mean_i(t_l), sigma) independently over points.
    Multivariate data: y_i ~ N(mean_i, sigma * I), an isotropic covariance.
    Covariate adjustment is switched on by the draw itself (eta/xi present).
    """

    observations: Observations
    skip_zero_membership: bool = True

    @classmethod
    def functional(
        cls,
        times,
        values,
        *,
        n_basis: int,
        covariates=None,
        basis=None,
        skip_zero_membership: bool = True,
    ) -> "MixedMembershipLogLike":
        obs = FunctionalObservations.from_lists(times, values, covariates=covariates)
        obs = obs.with_basis(n_basis, basis=bspline_basis if basis is None else basis)
        return cls(observations=obs, skip_zero_membership=skip_zero_membership)

    @classmethod
    def multivariate(cls, values, *, covariates=None, skip_zero_membership: bool = True) -> "MixedMembershipLogLike":
        obs = MultivariateObservations(values=values, covariates=covariates)
        return cls(observations=obs, skip_zero_membership=skip_zero_membership)

    @property
    def n_points(self) -> int:
        return self.observations.n_points

    def pointwise(self, draw: PosteriorDraw, *, draw_index: int | None = None) -> np.ndarray:
        """Per-observation log-densities (per point, or per subject vector)."""
        sigma = check_variance(draw.sigma, draw_index=draw_index)
        means = fitted_means(draw, self.observations, skip_zero_membership=self.skip_zero_membership)
        obs = self.observations
        if isinstance(obs, FunctionalObservations):
            y = np.concatenate(obs.values)
            mu = np.concatenate(means)
            return norm.logpdf(y, loc=mu, scale=np.sqrt(sigma))
        r = obs.values - np.vstack(means)
        d = float(obs.n_dims)
        return -0.5 * d * np.log(2.0 * np.pi * sigma) - np.sum(r * r, axis=1) / (2.0 * sigma)

    def loglike(self, draw: PosteriorDraw, *, draw_index: int | None = None) -> float:
        return float(np.sum(self.pointwise(draw, draw_index=draw_index)))

    def density(self, draw: PosteriorDraw, subject: int, point: int | None = None) -> float:
        """Likelihood (not log) of a single observation.

        `subject` and `point` are 1-based. Functional data need `point`; for
        multivariate data the whole vector of the subject is one observation.
        """
        sigma = check_variance(draw.sigma)
        obs = self.observations
        i = to_zero_based(subject, obs.n_subjects, kind="subject")
        X = obs.covariates if draw.covariate_adjusted else None
        x = None if X is None else X[i]
        sd = np.sqrt(sigma)
        if isinstance(obs, FunctionalObservations):
            if point is None:
                raise ValueError("point is required for functional observations.")
            if obs.basis is None:
                raise ValueError("FunctionalObservations need basis matrices; call with_basis(n_basis) first.")
            l = to_zero_based(point, obs.values[i].size, kind="point")
            mu = mean_at(draw, subject, obs.basis[i][l], x, skip_zero_membership=self.skip_zero_membership)
            return float(norm.pdf(obs.values[i][l], loc=mu, scale=sd))
        if point is not None:
            raise ValueError("point must be omitted for multivariate observations.")
        mu = multivariate_mean(draw, subject, x, skip_zero_membership=self.skip_zero_membership)
        return float(np.prod(norm.pdf(obs.values[i], loc=mu, scale=sd)))


def log_likelihood(draw: PosteriorDraw, observations: Observations, *, skip_zero_membership: bool = True) -> float:
    """Aggregate log-likelihood of one draw over every subject and observed point."""
    return MixedMembershipLogLike(observations, skip_zero_membership=skip_zero_membership).loglike(draw)


def pointwise_log_likelihood(
    draw: PosteriorDraw,
    observations: Observations,
    *,
    skip_zero_membership: bool = True,
) -> np.ndarray:
    return MixedMembershipLogLike(observations, skip_zero_membership=skip_zero_membership).pointwise(draw)


def point_density(
    draw: PosteriorDraw,
    observations: Observations,
    subject: int,
    point: int | None = None,
    *,
    skip_zero_membership: bool = True,
) -> float:
    return MixedMembershipLogLike(observations, skip_zero_membership=skip_zero_membership).density(
        draw, subject, point
    )
