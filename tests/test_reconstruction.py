import numpy as np
import pytest

from fmmm_posterior.observations import MultivariateObservations
from fmmm_posterior.reconstruction import (
    fitted_means,
    functional_mean,
    mean_at,
    multivariate_mean,
    subject_coefficients,
)
from fmmm_posterior.samples import PosteriorDraw


def _draw(*, K=3, P=4, N=2, I=2, C=None, seed=3):
    rng = np.random.default_rng(seed)
    kw = {}
    if C is not None:
        kw = dict(eta=rng.normal(size=(K, P, C)), xi=rng.normal(size=(K, P, N, C)))
    return PosteriorDraw(
        nu=rng.normal(size=(K, P)),
        phi=rng.normal(size=(K, P, N)),
        z=rng.dirichlet(np.ones(K), size=I),
        chi=rng.normal(size=(I, N)),
        sigma=1.0,
        **kw,
    )


def test_one_hot_membership_uses_only_that_cluster():
    d = _draw()
    z = np.array([[0.0, 1.0, 0.0], [0.2, 0.8, 0.0]])
    draw = PosteriorDraw(nu=d.nu, phi=d.phi, z=z, chi=d.chi, sigma=1.0)
    expected = d.nu[1] + d.phi[1] @ d.chi[0]
    np.testing.assert_allclose(subject_coefficients(draw, 1), expected)

    # Other clusters' parameters have no influence.
    nu = d.nu.copy()
    phi = d.phi.copy()
    nu[[0, 2]] = 1e6
    phi[[0, 2]] = -1e6
    other = PosteriorDraw(nu=nu, phi=phi, z=z, chi=d.chi, sigma=1.0)
    np.testing.assert_allclose(subject_coefficients(other, 1), expected)


def test_zero_membership_skip_matches_dense_evaluation():
    d = _draw(K=4, I=3, C=2)
    z = np.array([[0.5, 0.0, 0.5, 0.0], [0.0, 0.0, 0.0, 1.0], [0.1, 0.2, 0.3, 0.4]])
    draw = PosteriorDraw(nu=d.nu, phi=d.phi, z=z, chi=d.chi, sigma=1.0, eta=d.eta, xi=d.xi)
    x = np.array([0.3, -1.2])
    for i in range(1, 4):
        fast = subject_coefficients(draw, i, x, skip_zero_membership=True)
        dense = subject_coefficients(draw, i, x, skip_zero_membership=False)
        np.testing.assert_allclose(fast, dense, rtol=0, atol=1e-12)


def test_covariate_adjusted_coefficients():
    d = _draw(K=2, P=3, N=2, I=1, C=2)
    x = np.array([1.5, -0.5])
    expected = np.zeros(3)
    for k in range(2):
        mean_k = d.nu[k] + d.eta[k] @ x
        comp_k = np.zeros(3)
        for n in range(2):
            comp_k += d.chi[0, n] * (d.phi[k, :, n] + d.xi[k, :, n, :] @ x)
        expected += d.z[0, k] * (mean_k + comp_k)
    np.testing.assert_allclose(subject_coefficients(d, 1, x), expected)

    with pytest.raises(ValueError):
        subject_coefficients(d, 1)
    with pytest.raises(ValueError):
        subject_coefficients(d, 1, np.ones(3))
    with pytest.raises(ValueError):
        subject_coefficients(_draw(), 1, x)


def test_functional_and_multivariate_means():
    d = _draw(P=4)
    B = np.random.default_rng(0).uniform(size=(5, 4))
    coef = subject_coefficients(d, 2)
    np.testing.assert_allclose(functional_mean(d, 2, B), B @ coef)
    assert mean_at(d, 2, B[2]) == pytest.approx(float(B[2] @ coef))
    np.testing.assert_allclose(multivariate_mean(d, 2), coef)

    with pytest.raises(IndexError):
        subject_coefficients(d, 3)
    with pytest.raises(ValueError):
        functional_mean(d, 1, np.ones((5, 3)))


def test_fitted_means_check_observations():
    d = _draw(P=4, I=2)
    obs = MultivariateObservations(values=np.zeros((2, 4)))
    means = fitted_means(d, obs)
    assert len(means) == 2
    np.testing.assert_allclose(means[0], subject_coefficients(d, 1))

    with pytest.raises(ValueError):
        fitted_means(d, MultivariateObservations(values=np.zeros((2, 3))))
    with pytest.raises(ValueError):
        fitted_means(d, MultivariateObservations(values=np.zeros((3, 4))))
    with pytest.raises(ValueError):
        fitted_means(_draw(P=4, I=2, C=1), obs)


def test_subject_indices_are_one_based():
    draw = PosteriorDraw(
        nu=np.eye(2),
        phi=np.zeros((2, 2, 1)),
        z=np.array([[1.0, 0.0], [0.0, 1.0]]),
        chi=np.zeros((2, 1)),
        sigma=1.0,
    )
    b = np.array([1.0, 0.0])
    assert mean_at(draw, 1, b) == pytest.approx(1.0)
    assert mean_at(draw, 2, b) == pytest.approx(0.0)
    np.testing.assert_allclose(multivariate_mean(draw, 1), [1.0, 0.0])
    np.testing.assert_allclose(functional_mean(draw, 2, np.eye(2)), [0.0, 1.0])

    single = PosteriorDraw(nu=np.eye(2), phi=np.zeros((2, 2, 1)), z=np.array([[0.0, 1.0]]), chi=np.zeros((1, 1)), sigma=1.0)
    np.testing.assert_allclose(multivariate_mean(single, 1), [0.0, 1.0])
    with pytest.raises(IndexError, match="subject"):
        mean_at(single, 0, b)
    with pytest.raises(IndexError, match="subject"):
        mean_at(single, 2, b)
