import numpy as np
from scipy.stats import multivariate_normal

from mashcor._numerics import cov2cor, mvn_logpdf_batch, mvn_logpdf_stack
from mashcor.data import mash_set_data
from mashcor.likelihoods import calc_lik_matrix, calc_relative_lik_matrix


def test_calc_lik_matrix_matches_scipy_common_cov():
    Bhat = np.array([[0.1, -0.2], [0.3, 0.4], [-0.5, 0.2]])
    data = mash_set_data(Bhat, Shat=1.0)

    U = [np.eye(2), np.array([[1.0, 0.3], [0.3, 1.0]])]
    ll = calc_lik_matrix(data, U, log=True)

    expected = np.column_stack(
        [
            multivariate_normal(mean=np.zeros(2), cov=np.eye(2) + Uk).logpdf(Bhat)
            for Uk in U
        ]
    )
    assert np.allclose(ll, expected, atol=1e-10)


def test_calc_lik_matrix_matches_scipy_per_effect_cov():
    rng = np.random.default_rng(7)
    Bhat = rng.normal(size=(5, 3))
    Shat = np.exp(rng.normal(scale=0.3, size=(5, 3)))
    V = np.array([[1.0, 0.4, 0.0], [0.4, 1.0, 0.2], [0.0, 0.2, 1.0]])
    data = mash_set_data(Bhat, Shat, V=V)

    U = [np.zeros((3, 3)), np.ones((3, 3))]
    ll = calc_lik_matrix(data, U, log=True)

    for j in range(5):
        S = np.diag(Shat[j]) @ V @ np.diag(Shat[j])
        for p, Uk in enumerate(U):
            expected = multivariate_normal(mean=np.zeros(3), cov=S + Uk).logpdf(Bhat[j])
            assert np.isclose(ll[j, p], expected, atol=1e-10)


def test_relative_lik_matrix_row_max_is_zero():
    rng = np.random.default_rng(8)
    data = mash_set_data(rng.normal(size=(6, 2)), Shat=1.0)
    U = [np.zeros((2, 2)), np.eye(2), 4.0 * np.eye(2)]

    rel = calc_relative_lik_matrix(data, U)
    assert np.allclose(np.max(rel.loglik_matrix, axis=1), 0.0)
    assert np.allclose(rel.loglik_matrix + rel.lfactors[:, None], calc_lik_matrix(data, U, log=True))


def test_mvn_logpdf_batch_singular_cov_matches_near_mean_edge_case():
    mean = np.array([0.2, -0.1], dtype=float)
    sigma = np.array([[1.0, 2.0], [2.0, 4.0]], dtype=float)  # singular PSD
    X = np.array(
        [
            [0.2, -0.1],  # exact mean
            [0.2 + 4e-7, -0.1 - 3e-7],  # within 1e-6 L1 tolerance
            [0.2 + 2e-6, -0.1],  # outside tolerance
        ],
        dtype=float,
    )
    ll = mvn_logpdf_batch(X, mean, sigma)
    assert np.isposinf(ll[0])
    assert np.isposinf(ll[1])
    assert np.isneginf(ll[2])


def test_mvn_logpdf_stack_falls_back_for_singular_member():
    X = np.array([[0.5, -0.5], [0.0, 0.0]])
    sigma = np.stack([np.eye(2), np.zeros((2, 2))], axis=0)
    ll = mvn_logpdf_stack(X, sigma)
    assert np.isclose(ll[0], multivariate_normal(mean=np.zeros(2), cov=np.eye(2)).logpdf(X[0]))
    assert np.isposinf(ll[1])


def test_cov2cor_unit_diagonal_and_zero_variance():
    V = np.array([[4.0, 2.0, 0.0], [2.0, 9.0, 0.0], [0.0, 0.0, 0.0]])
    C = cov2cor(V)
    assert np.allclose(np.diag(C), 1.0)
    assert np.isclose(C[0, 1], 2.0 / 6.0)
    assert np.allclose(C[2, :2], 0.0)
