import numpy as np
import pytest

import mashcor.optimize as opt
from mashcor.optimize import optimize_pi, penalized_objective


def _loglik(matrix_lik: np.ndarray, pi: np.ndarray) -> float:
    with np.errstate(all="ignore"):
        mix = matrix_lik @ pi
    mix = np.where(np.isfinite(mix), mix, np.finfo(float).tiny)
    return float(np.sum(np.log(np.maximum(mix, np.finfo(float).tiny))))


def _assert_valid_pi(pi: np.ndarray) -> None:
    assert np.all(np.isfinite(pi))
    assert np.isclose(np.sum(pi), 1.0)
    assert np.all(pi >= 0.0)


def test_slsqp_matches_em_objective_or_better():
    rng = np.random.default_rng(10)
    # Positive likelihood matrix.
    matrix_lik = np.exp(rng.normal(size=(300, 20)))

    pi_em = optimize_pi(matrix_lik, method="em", control={"max_iter": 800, "tol": 1e-9})
    pi_sqp = optimize_pi(matrix_lik, method="slsqp", control={"max_iter": 800, "tol": 1e-9})

    _assert_valid_pi(pi_em)
    _assert_valid_pi(pi_sqp)
    assert np.all(pi_em > 0)
    assert np.all(pi_sqp > 0)

    ll_em = _loglik(matrix_lik, pi_em)
    ll_sqp = _loglik(matrix_lik, pi_sqp)
    assert ll_sqp >= ll_em - 1e-6


def test_slsqp_respects_prior_bias():
    rng = np.random.default_rng(11)
    matrix_lik = np.exp(rng.normal(size=(200, 8)))

    pi_uniform = optimize_pi(matrix_lik, method="slsqp", prior=np.ones(8))
    prior = np.ones(8)
    prior[0] = 20.0
    pi_biased = optimize_pi(matrix_lik, method="slsqp", prior=prior)

    assert pi_biased[0] > pi_uniform[0]


def test_squarem_improves_or_matches_em_objective():
    rng = np.random.default_rng(13)
    matrix_lik = np.exp(rng.normal(size=(400, 30)))

    pi_em = optimize_pi(matrix_lik, method="em", control={"max_iter": 1200, "tol": 1e-9})
    pi_sq = optimize_pi(matrix_lik, method="squarem", control={"max_iter": 1200, "tol": 1e-9})

    ll_em = _loglik(matrix_lik, pi_em)
    ll_sq = _loglik(matrix_lik, pi_sq)
    assert ll_sq >= ll_em - 1e-6


def test_all_methods_return_valid_weights():
    rng = np.random.default_rng(123)
    J, K = 200, 12
    u = rng.normal(size=J)
    v = rng.normal(size=K)
    log_lik = 3.0 * np.outer(u / np.std(u), v / np.std(v)) + 0.02 * rng.normal(size=(J, K))
    matrix_lik = np.exp(log_lik)

    prior = np.ones(K)
    prior[0] = 10.0
    for method in ("em", "squarem", "slsqp", "auto"):
        _assert_valid_pi(optimize_pi(matrix_lik, method=method, prior=prior))


def test_optimize_pi_validates_inputs():
    matrix_lik = np.ones((5, 3))
    with pytest.raises(ValueError, match="method must be one of"):
        optimize_pi(matrix_lik, method="mixsqp")
    with pytest.raises(ValueError, match="non-negative"):
        optimize_pi(-matrix_lik)
    with pytest.raises(ValueError, match="prior has wrong length"):
        optimize_pi(matrix_lik, prior=np.ones(2))
    with pytest.raises(ValueError, match="pi_init has wrong length"):
        optimize_pi(matrix_lik, pi_init=np.ones(4) / 4)


def test_optimize_pi_falls_back_when_a_method_fails(monkeypatch):
    rng = np.random.default_rng(14)
    matrix_lik = np.exp(rng.normal(size=(50, 4)))

    def _fail(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setitem(opt._SOLVERS, "slsqp", _fail)
    pi = optimize_pi(matrix_lik, method="slsqp")
    _assert_valid_pi(pi)

    monkeypatch.setitem(opt._SOLVERS, "squarem", _fail)
    monkeypatch.setitem(opt._SOLVERS, "em", _fail)
    with pytest.raises(RuntimeError, match="All optimization methods failed"):
        optimize_pi(matrix_lik, method="auto")


def test_penalized_objective_includes_prior_term():
    matrix_lik = np.array([[1.0, 2.0], [3.0, 1.0]])
    pi = np.array([0.25, 0.75])
    prior = np.array([10.0, 1.0])

    expected = -(np.log(1.75) + np.log(1.5)) - 9.0 * np.log(0.25)
    assert np.isclose(penalized_objective(matrix_lik, pi, prior), expected)
    assert np.isclose(penalized_objective(matrix_lik, pi, np.ones(2)), -(np.log(1.75) + np.log(1.5)))
