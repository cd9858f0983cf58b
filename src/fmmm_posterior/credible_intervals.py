from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import numpy as np

from .basis import BasisEvaluator, bspline_basis, evaluate_basis
from .config import DEFAULT_INTERVALS, IntervalSettings
from .errors import DomainError
from .samples import to_zero_based

logger = logging.getLogger(__name__)


def _frozen(x) -> np.ndarray | float:
    a = np.asarray(x, dtype=float)
    if a.ndim == 0:
        return float(a)
    a = a.view()
    a.setflags(write=False)
    return a


def _jsonable(x) -> Any:
    return x.tolist() if isinstance(x, np.ndarray) else float(x)


@dataclass(frozen=True)
class CredibleInterval:
    """Lower / median / upper summaries on the grid of the queried quantity.

    Each field is a float for scalar quantities, otherwise an array with the shape
    of the grid (vector for curves, matrix for surfaces and membership weights).
    """

    lower: np.ndarray | float
    median: np.ndarray | float
    upper: np.ndarray | float

    def __post_init__(self) -> None:
        for name in ("lower", "median", "upper"):
            object.__setattr__(self, name, _frozen(getattr(self, name)))

    @property
    def width(self) -> np.ndarray | float:
        return _frozen(np.asarray(self.upper) - np.asarray(self.lower))

    def to_jsonable(self) -> dict[str, Any]:
        return {
            "CI_025": _jsonable(self.lower),
            "CI_50": _jsonable(self.median),
            "CI_975": _jsonable(self.upper),
        }


@dataclass(frozen=True)
class SimultaneousBand(CredibleInterval):
    """Max-statistic band; `median` holds the pointwise posterior mean."""

    critical_value: float = float("nan")
    n_excluded: int = 0

    def to_jsonable(self) -> dict[str, Any]:
        out = super().to_jsonable()
        out["critical_value"] = float(self.critical_value)
        out["n_excluded"] = int(self.n_excluded)
        return out


def _draw_array(draws, *, parameter: str | None, min_draws: int) -> np.ndarray:
    a = np.asarray(draws, dtype=float)
    if a.ndim == 0:
        raise ValueError("draws must have a leading draw axis.")
    if a.shape[0] < min_draws:
        raise DomainError(
            f"Need at least {min_draws} posterior draws, got {a.shape[0]}.",
            parameter=parameter,
        )
    return a


def pointwise_interval(
    draws: np.ndarray,
    *,
    settings: IntervalSettings = DEFAULT_INTERVALS,
    parameter: str | None = None,
) -> CredibleInterval:
    """Empirical percentiles of the draws, independently at every grid coordinate.

    `draws` has the draw axis first; the remaining axes are the grid. There is no
    joint coverage guarantee across the grid.
    """
    a = _draw_array(draws, parameter=parameter, min_draws=1)
    q = np.quantile(a, settings.probabilities, axis=0)
    return CredibleInterval(lower=q[0], median=q[1], upper=q[2])


def simultaneous_band(
    draws: np.ndarray,
    *,
    settings: IntervalSettings = DEFAULT_INTERVALS,
    parameter: str | None = None,
) -> SimultaneousBand:
    """Simultaneous band from the maximum studentized deviation over the whole grid.

    With f̄ and ŝ the pointwise posterior mean and standard deviation (S-1 denominator),
    each draw s gives d_s = max_g |f_s(g) - f̄(g)| / ŝ(g); the band is f̄ ± c ŝ with c
    the `settings.simultaneous_level` quantile of {d_s}. Grids of any dimension are
    flattened before taking the max.

    Grid points with ŝ(g) = 0 are handled by `settings.zero_spread`: "exclude" leaves
    them out of the max (their band collapses to f̄(g)), "raise" fails on the first one.
    A grid where every point has zero spread always raises `DomainError`.

    The band is symmetric around f̄ and scaled by ŝ, so it is usually wider than the
    pointwise percentile interval but not always: for strongly skewed or discrete
    draws (e.g. mostly zeros with a few ones) it can be narrower at some points.
    """
    a = _draw_array(draws, parameter=parameter, min_draws=2)
    S = int(a.shape[0])
    grid_shape = a.shape[1:]
    flat = a.reshape(S, -1)
    if flat.shape[1] == 0:
        raise ValueError("draws must cover at least one grid point.")

    f_mean = flat.mean(axis=0)
    f_sd = flat.std(axis=0, ddof=1)
    degenerate = ~(f_sd > 0.0)
    if np.all(degenerate):
        raise DomainError(
            "Posterior draws have zero spread at every grid point.",
            parameter=parameter,
            coordinate=np.unravel_index(0, grid_shape) if grid_shape else None,
        )
    if np.any(degenerate):
        first = int(np.flatnonzero(degenerate)[0])
        coord = np.unravel_index(first, grid_shape)
        if settings.zero_spread == "raise":
            raise DomainError(
                "Zero posterior standard deviation; studentized deviation undefined.",
                parameter=parameter,
                coordinate=coord,
            )
        logger.warning(
            "excluding %d zero-spread grid points from the simultaneous band (first at %s)",
            int(np.sum(degenerate)),
            tuple(int(c) for c in coord),
        )

    keep = ~degenerate
    dev = np.abs(flat[:, keep] - f_mean[keep]) / f_sd[keep]
    d_max = dev.max(axis=1)
    c = float(np.quantile(d_max, settings.simultaneous_level))
    logger.info("simultaneous band critical value %.4f from %d draws over %d grid points", c, S, flat.shape[1])

    half = np.where(keep, c * f_sd, 0.0)
    return SimultaneousBand(
        lower=(f_mean - half).reshape(grid_shape),
        median=f_mean.reshape(grid_shape),
        upper=(f_mean + half).reshape(grid_shape),
        critical_value=c,
        n_excluded=int(np.sum(degenerate)),
    )


def mean_curve_draws(
    nu: np.ndarray,
    time: np.ndarray,
    cluster: int,
    *,
    basis: BasisEvaluator = bspline_basis,
    eta: np.ndarray | None = None,
    covariates=None,
) -> np.ndarray:
    """Posterior draws (S, G) of one cluster's mean curve on the grid `time`.

    `cluster` is 1-based. With `eta` draws (S, K, P, C) and a covariate row, the
    curve is the covariate-adjusted mean B (nu_k + eta_k x).
    """
    nu = np.asarray(nu, dtype=float)
    if nu.ndim != 3:
        raise ValueError(f"nu draws must have shape (S, K, P), got {nu.shape}.")
    k = to_zero_based(cluster, nu.shape[1], kind="cluster")
    B = evaluate_basis(basis, time, nu.shape[2])
    coef = nu[:, k, :]
    if (eta is None) != (covariates is None):
        raise ValueError("eta and covariates must be given together.")
    if eta is not None:
        eta = np.asarray(eta, dtype=float)
        x = np.asarray(covariates, dtype=float)
        if eta.shape[:3] != nu.shape or eta.ndim != 4 or x.shape != (eta.shape[3],):
            raise ValueError(f"eta draws {eta.shape} / covariate row {x.shape} do not match nu {nu.shape}.")
        coef = coef + eta[:, k, :, :] @ x
    return coef @ B.T


def covariance_surface_draws(
    phi: np.ndarray,
    time1: np.ndarray,
    time2: np.ndarray,
    cluster1: int,
    cluster2: int,
    *,
    basis: BasisEvaluator = bspline_basis,
) -> np.ndarray:
    """Posterior draws (S, G1, G2) of the covariance surface between two clusters.

    For each draw: sum_n (B1 phi[l,:,n]) (B2 phi[m,:,n])^T, clusters 1-based.
    """
    phi = np.asarray(phi, dtype=float)
    if phi.ndim != 4:
        raise ValueError(f"phi draws must have shape (S, K, P, N), got {phi.shape}.")
    l = to_zero_based(cluster1, phi.shape[1], kind="cluster")
    m = to_zero_based(cluster2, phi.shape[1], kind="cluster")
    B1 = evaluate_basis(basis, time1, phi.shape[2])
    B2 = evaluate_basis(basis, time2, phi.shape[2])
    f1 = np.einsum("gp,spn->sgn", B1, phi[:, l])
    f2 = np.einsum("hp,spn->shn", B2, phi[:, m])
    return np.einsum("sgn,shn->sgh", f1, f2)


def mean_ci(
    nu: np.ndarray,
    time: np.ndarray,
    cluster: int,
    *,
    simultaneous: bool = False,
    basis: BasisEvaluator = bspline_basis,
    eta: np.ndarray | None = None,
    covariates=None,
    settings: IntervalSettings = DEFAULT_INTERVALS,
) -> CredibleInterval:
    """Pointwise (default) or simultaneous credible band of a cluster mean curve."""
    f = mean_curve_draws(nu, time, cluster, basis=basis, eta=eta, covariates=covariates)
    if simultaneous:
        return simultaneous_band(f, settings=settings, parameter="nu")
    return pointwise_interval(f, settings=settings, parameter="nu")


def covariance_ci(
    phi: np.ndarray,
    time1: np.ndarray,
    time2: np.ndarray,
    cluster1: int,
    cluster2: int,
    *,
    simultaneous: bool = False,
    basis: BasisEvaluator = bspline_basis,
    settings: IntervalSettings = DEFAULT_INTERVALS,
) -> CredibleInterval:
    """Pointwise (default) or simultaneous credible surface of a cross-cluster covariance."""
    cov = covariance_surface_draws(phi, time1, time2, cluster1, cluster2, basis=basis)
    if simultaneous:
        return simultaneous_band(cov, settings=settings, parameter="phi")
    return pointwise_interval(cov, settings=settings, parameter="phi")


def sigma_ci(sigma: np.ndarray, *, settings: IntervalSettings = DEFAULT_INTERVALS) -> CredibleInterval:
    s = np.asarray(sigma, dtype=float).reshape(-1)
    bad = np.flatnonzero(~(s > 0.0))
    if bad.size:
        raise DomainError("Residual variance must be positive.", parameter="sigma", coordinate=(int(bad[0]),))
    return pointwise_interval(s, settings=settings, parameter="sigma")


def membership_ci(z: np.ndarray, *, settings: IntervalSettings = DEFAULT_INTERVALS) -> CredibleInterval:
    """Per-entry credible intervals of the (I, K) membership matrix."""
    z = np.asarray(z, dtype=float)
    if z.ndim != 3:
        raise ValueError(f"z draws must have shape (S, I, K), got {z.shape}.")
    return pointwise_interval(z, settings=settings, parameter="z")
