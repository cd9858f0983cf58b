import numpy as np
import pytest

from fmmm_posterior.samples import PosteriorSamples


def _make_samples(*, seed=0, S=6, K=2, P=4, N=2, I=3, C=None, sparse_z=False):
    rng = np.random.default_rng(seed)
    z = rng.dirichlet(np.ones(K), size=(S, I))
    if sparse_z:
        z[:, 0, 0] = 0.0
        z[:, 0] /= z[:, 0].sum(axis=-1, keepdims=True)
    arrays = dict(
        nu=rng.normal(size=(S, K, P)),
        phi=0.5 * rng.normal(size=(S, K, P, N)),
        z=z,
        chi=rng.normal(size=(S, I, N)),
        sigma=rng.uniform(0.5, 1.5, size=S),
    )
    if C is not None:
        arrays["eta"] = 0.3 * rng.normal(size=(S, K, P, C))
        arrays["xi"] = 0.1 * rng.normal(size=(S, K, P, N, C))
    return PosteriorSamples(**arrays)


@pytest.fixture
def make_samples():
    return _make_samples


def identity_basis(time, n_basis):
    return np.eye(np.asarray(time).size, n_basis)


@pytest.fixture
def selection_basis():
    return identity_basis
