from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Iterable

import numpy as np
from scipy.special import logsumexp

from .errors import DomainError
from .likelihoods import MixedMembershipLogLike
from .observations import Observations
from .samples import PosteriorDraw, PosteriorSamples

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DicResult:
    dic: float
    mean_deviance: float
    deviance_at_mean: float
    p_d: float
    n_draws: int

    def to_jsonable(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class WaicResult:
    waic: float
    lppd: float
    p_waic: float
    n_points: int

    def to_jsonable(self) -> dict[str, Any]:
        return asdict(self)


def waic_from_loglik(loglik: np.ndarray) -> WaicResult:
    """Compute WAIC from per-observation log-likelihood values.

    Notes
    -----
    For functional data every observed point is one 'point'; for multivariate data
    every subject vector is one 'point'. `lppd` is the log pointwise predictive
    density, i.e. the sum over points of log mean_s p(y_j | theta_s).
    """
    ll = np.asarray(loglik, dtype=float)
    if ll.ndim != 2:
        raise ValueError("loglik must have shape (n_draws, n_points).")
    S, n_points = ll.shape
    if S < 5:
        raise DomainError(f"WAIC needs at least 5 posterior draws, got {S}.", parameter="loglik")
    bad = np.argwhere(~np.isfinite(ll))
    if bad.size:
        raise DomainError(
            "Non-finite pointwise log-likelihood.",
            parameter="loglik",
            coordinate=tuple(int(c) for c in bad[0]),
        )

    point_lppd = logsumexp(ll, axis=0) - np.log(S)
    point_penalty = ll.var(axis=0, ddof=1)
    lppd = float(point_lppd.sum())
    p_waic = float(point_penalty.sum())
    logger.debug("WAIC over %d points from %d draws: lppd=%.4f p_waic=%.4f", n_points, S, lppd, p_waic)
    return WaicResult(waic=-2.0 * (lppd - p_waic), lppd=lppd, p_waic=p_waic, n_points=int(n_points))


class _RunningMean:
    """Elementwise running mean of streamed draws (the plug-in parameter set)."""

    def __init__(self) -> None:
        self.n = 0
        self._sums: dict[str, Any] = {}

    def add(self, draw: PosteriorDraw) -> None:
        for name in ("nu", "phi", "z", "chi", "sigma", "eta", "xi"):
            value = getattr(draw, name)
            if value is None:
                continue
            if name in self._sums:
                self._sums[name] = self._sums[name] + value
            else:
                self._sums[name] = np.array(value, dtype=float)
        self.n += 1

    def mean(self) -> PosteriorDraw:
        if self.n == 0:
            raise DomainError("Posterior sample set is empty.")
        avg = {k: v / float(self.n) for k, v in self._sums.items()}
        return PosteriorDraw(
            nu=avg["nu"],
            phi=avg["phi"],
            z=avg["z"],
            chi=avg["chi"],
            sigma=float(avg["sigma"]),
            eta=avg.get("eta"),
            xi=avg.get("xi"),
        )


# Set in the parent before forking the pool; workers read it instead of unpickling draws.
_LOGLIK_CTX: tuple[MixedMembershipLogLike, PosteriorSamples] | None = None


def _loglik_worker(s: int) -> tuple[int, float]:
    ctx = _LOGLIK_CTX
    if ctx is None:
        raise RuntimeError("Log-likelihood worker context is not initialized.")
    loglike, samples = ctx
    return int(s), loglike.loglike(samples.draw(int(s)), draw_index=int(s))


def per_draw_log_likelihood(
    samples: PosteriorSamples,
    loglike: MixedMembershipLogLike,
    *,
    n_processes: int = 1,
) -> np.ndarray:
    """Aggregate log-likelihood of every draw, optionally across a process pool.

    Each draw writes only its own output slot, so the order workers finish in does
    not matter.
    """
    global _LOGLIK_CTX

    S = samples.n_draws
    out = np.empty(S, dtype=float)
    if int(n_processes) > 1 and S > 1:
        import multiprocessing as mp

        _LOGLIK_CTX = (loglike, samples)
        try:
            chunksize = max(1, S // (4 * int(n_processes)))
            with mp.get_context("fork").Pool(processes=int(n_processes)) as pool:
                for s, ll in pool.imap_unordered(_loglik_worker, range(S), chunksize=chunksize):
                    out[s] = ll
        finally:
            _LOGLIK_CTX = None
    else:
        for s in range(S):
            out[s] = loglike.loglike(samples.draw(s), draw_index=s)
    return out


def dic_score(
    draws: PosteriorSamples | Iterable[PosteriorDraw],
    observations: Observations,
    *,
    skip_zero_membership: bool = True,
    n_processes: int = 1,
) -> DicResult:
    """Deviance information criterion of a posterior sample.

    D(s) = -2 log p(y | theta_s);  D̄ = mean_s D(s);  D(θ̄) at the elementwise posterior
    mean of every parameter block;  p_D = D̄ - D(θ̄);  DIC = D̄ + p_D.

    `draws` may be an in-memory `PosteriorSamples` (parallelizable with
    `n_processes`) or any restartable sequence of draws such as
    `sample_store.ChunkedDraws`, which is consumed one chunk at a time.
    """
    loglike = MixedMembershipLogLike(observations, skip_zero_membership=skip_zero_membership)

    if isinstance(draws, PosteriorSamples) and int(n_processes) > 1:
        ll = per_draw_log_likelihood(draws, loglike, n_processes=n_processes)
        n = int(ll.size)
        deviance_sum = float(-2.0 * np.sum(ll))
        theta_bar = draws.posterior_mean()
    else:
        acc = _RunningMean()
        deviance_sum = 0.0
        for s, draw in enumerate(draws):
            deviance_sum += -2.0 * loglike.loglike(draw, draw_index=s)
            acc.add(draw)
        n = acc.n
        theta_bar = acc.mean()

    d_bar = deviance_sum / float(n)
    d_hat = -2.0 * loglike.loglike(theta_bar)
    p_d = d_bar - d_hat
    res = DicResult(dic=d_bar + p_d, mean_deviance=d_bar, deviance_at_mean=d_hat, p_d=p_d, n_draws=n)
    logger.info("DIC=%.3f (mean deviance %.3f, p_D %.3f) from %d draws", res.dic, d_bar, p_d, n)
    return res


def pointwise_log_likelihood_matrix(
    draws: PosteriorSamples | Iterable[PosteriorDraw],
    observations: Observations,
    *,
    skip_zero_membership: bool = True,
) -> np.ndarray:
    """Stack per-observation log-likelihoods into an (n_draws, n_points) matrix."""
    loglike = MixedMembershipLogLike(observations, skip_zero_membership=skip_zero_membership)
    rows = [loglike.pointwise(d, draw_index=s) for s, d in enumerate(draws)]
    if not rows:
        raise DomainError("Posterior sample set is empty.")
    return np.vstack(rows)


def waic_score(
    draws: PosteriorSamples | Iterable[PosteriorDraw],
    observations: Observations,
    *,
    skip_zero_membership: bool = True,
) -> WaicResult:
    ll = pointwise_log_likelihood_matrix(draws, observations, skip_zero_membership=skip_zero_membership)
    res = waic_from_loglik(ll)
    logger.info("WAIC=%.3f (lppd %.3f, p_waic %.3f) over %d points", res.waic, res.lppd, res.p_waic, res.n_points)
    return res
