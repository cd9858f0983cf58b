"""Directory-level queries over chunked MCMC output.

Each function loads only the parameters it needs from `<directory>/<Stem><i>.npy`
(i = 0..n_files-1) and returns a summary. Cluster indices are 1-based.
"""

from __future__ import annotations

from pathlib import Path

import numpy as np

from . import credible_intervals as ci
from .basis import BasisEvaluator, bspline_basis
from .config import DEFAULT_INTERVALS, DEFAULT_LAYOUT, ChunkLayout, IntervalSettings
from .model_selection import DicResult, dic_score
from .observations import Observations
from .sample_store import ChunkedDraws, load_parameter, load_posterior_samples


def mean_ci(
    directory: str | Path,
    n_files: int,
    time: np.ndarray,
    cluster: int,
    *,
    simultaneous: bool = False,
    covariates=None,
    n_draws_per_file: int | None = None,
    basis: BasisEvaluator = bspline_basis,
    layout: ChunkLayout = DEFAULT_LAYOUT,
    settings: IntervalSettings = DEFAULT_INTERVALS,
) -> ci.CredibleInterval:
    nu = load_parameter(directory, "nu", n_files, n_draws_per_file=n_draws_per_file, layout=layout)
    eta = None
    if covariates is not None:
        eta = load_parameter(directory, "eta", n_files, n_draws_per_file=n_draws_per_file, layout=layout)
    return ci.mean_ci(
        nu,
        time,
        cluster,
        simultaneous=simultaneous,
        basis=basis,
        eta=eta,
        covariates=covariates,
        settings=settings,
    )


def covariance_ci(
    directory: str | Path,
    n_files: int,
    time1: np.ndarray,
    time2: np.ndarray,
    cluster1: int,
    cluster2: int,
    *,
    simultaneous: bool = False,
    n_draws_per_file: int | None = None,
    basis: BasisEvaluator = bspline_basis,
    layout: ChunkLayout = DEFAULT_LAYOUT,
    settings: IntervalSettings = DEFAULT_INTERVALS,
) -> ci.CredibleInterval:
    phi = load_parameter(directory, "phi", n_files, n_draws_per_file=n_draws_per_file, layout=layout)
    return ci.covariance_ci(
        phi,
        time1,
        time2,
        cluster1,
        cluster2,
        simultaneous=simultaneous,
        basis=basis,
        settings=settings,
    )


def sigma_ci(
    directory: str | Path,
    n_files: int,
    *,
    n_draws_per_file: int | None = None,
    layout: ChunkLayout = DEFAULT_LAYOUT,
    settings: IntervalSettings = DEFAULT_INTERVALS,
) -> ci.CredibleInterval:
    sigma = load_parameter(directory, "sigma", n_files, n_draws_per_file=n_draws_per_file, layout=layout)
    return ci.sigma_ci(sigma, settings=settings)


def membership_ci(
    directory: str | Path,
    n_files: int,
    *,
    n_draws_per_file: int | None = None,
    layout: ChunkLayout = DEFAULT_LAYOUT,
    settings: IntervalSettings = DEFAULT_INTERVALS,
) -> ci.CredibleInterval:
    z = load_parameter(directory, "z", n_files, n_draws_per_file=n_draws_per_file, layout=layout)
    return ci.membership_ci(z, settings=settings)


def model_dic(
    directory: str | Path,
    n_files: int,
    observations: Observations,
    *,
    covariate_adjusted: bool = False,
    lazy: bool = True,
    n_processes: int = 1,
    n_draws_per_file: int | None = None,
    skip_zero_membership: bool = True,
    layout: ChunkLayout = DEFAULT_LAYOUT,
) -> DicResult:
    """DIC of the model stored in `directory`.

    With `lazy` (the default) draws are streamed chunk by chunk; otherwise the whole
    sample is loaded, which allows `n_processes > 1`.
    """
    if lazy:
        draws = ChunkedDraws(
            directory,
            n_files,
            covariate_adjusted=covariate_adjusted,
            n_draws_per_file=n_draws_per_file,
            layout=layout,
        )
        return dic_score(draws, observations, skip_zero_membership=skip_zero_membership)
    samples = load_posterior_samples(
        directory,
        n_files,
        covariate_adjusted=covariate_adjusted,
        n_draws_per_file=n_draws_per_file,
        layout=layout,
    )
    return dic_score(samples, observations, skip_zero_membership=skip_zero_membership, n_processes=n_processes)
