from __future__ import annotations

import logging

import numpy as np
from scipy.optimize import minimize

logger = logging.getLogger(__name__)

_METHODS = ("slsqp", "squarem", "em", "auto")


def initialize_pi(K: int) -> np.ndarray:
    if K <= 0:
        raise ValueError("K must be positive")
    return np.full(K, 1.0 / K, dtype=float)


def _sanitize_pi(pi: np.ndarray, eps: float) -> np.ndarray:
    x = np.asarray(pi, dtype=float)
    x = np.maximum(np.where(np.isfinite(x), x, eps), eps)
    s = np.sum(x)
    if not np.isfinite(s) or s <= 0:
        return np.full_like(x, 1.0 / x.size)
    return x / s


def _mixture_density(matrix_lik: np.ndarray, pi: np.ndarray, eps: float) -> np.ndarray:
    with np.errstate(all="ignore"):
        denom = matrix_lik @ pi
    return np.maximum(np.where(np.isfinite(denom), denom, eps), eps)


def penalized_objective(matrix_lik: np.ndarray, pi: np.ndarray, prior: np.ndarray, eps: float = 1e-12) -> float:
    """Negative penalized log-likelihood of mixture weights ``pi``."""
    p = _sanitize_pi(pi, eps)
    value = -np.sum(np.log(_mixture_density(matrix_lik, p, eps)))
    alpha = np.asarray(prior, dtype=float) - 1.0
    if np.any(alpha != 0.0):
        value -= np.dot(alpha, np.log(np.maximum(p, eps)))
    return float(value)


def _objective_grad(matrix_lik: np.ndarray, pi: np.ndarray, prior: np.ndarray, eps: float) -> np.ndarray:
    p = _sanitize_pi(pi, eps)
    denom = _mixture_density(matrix_lik, p, eps)
    with np.errstate(all="ignore"):
        frac = matrix_lik / denom[:, None]
    grad = -np.sum(np.where(np.isfinite(frac), frac, 0.0), axis=0)
    alpha = prior - 1.0
    if np.any(alpha != 0.0):
        grad -= alpha / np.maximum(p, eps)
    return grad


def _em_step(matrix_lik: np.ndarray, pi: np.ndarray, prior: np.ndarray, denom_const: float, eps: float) -> np.ndarray:
    weighted = matrix_lik * pi[None, :]
    w = weighted / np.maximum(np.sum(weighted, axis=1, keepdims=True), eps)
    return _sanitize_pi((np.sum(w, axis=0) + prior - 1.0) / denom_const, eps)


def _em_denominator(matrix_lik: np.ndarray, prior: np.ndarray) -> float:
    J, K = matrix_lik.shape
    denom_const = J + np.sum(prior) - K
    if denom_const <= 0:
        raise ValueError("Invalid prior: denominator for M-step is non-positive")
    return float(denom_const)


def _em_optimize_pi(matrix_lik: np.ndarray, pi_init: np.ndarray, prior: np.ndarray, max_iter: int, tol: float) -> np.ndarray:
    denom_const = _em_denominator(matrix_lik, prior)
    eps = np.finfo(float).tiny
    pi = np.asarray(pi_init, dtype=float)
    for _ in range(max_iter):
        new_pi = _em_step(matrix_lik, pi, prior, denom_const, eps)
        converged = np.max(np.abs(new_pi - pi)) < tol
        pi = new_pi
        if converged:
            break
    return pi


def _squarem_optimize_pi(matrix_lik: np.ndarray, pi_init: np.ndarray, prior: np.ndarray, max_iter: int, tol: float) -> np.ndarray:
    denom_const = _em_denominator(matrix_lik, prior)
    eps = np.finfo(float).tiny
    x = _sanitize_pi(pi_init, eps)
    f_prev = penalized_objective(matrix_lik, x, prior, eps)

    for _ in range(max_iter):
        x1 = _em_step(matrix_lik, x, prior, denom_const, eps)
        r = x1 - x
        if np.max(np.abs(r)) < tol:
            x = x1
            break
        x2 = _em_step(matrix_lik, x1, prior, denom_const, eps)
        v = (x2 - x1) - r

        sv2 = float(np.dot(v, v))
        if sv2 <= eps:
            x_prop = x2
        else:
            step = float(np.clip(-np.sqrt(float(np.dot(r, r)) / sv2), -10.0, -1e-4))
            x_sq = _sanitize_pi(x - 2.0 * step * r + (step * step) * v, eps)
            x_prop = _em_step(matrix_lik, x_sq, prior, denom_const, eps)

        f_prop = penalized_objective(matrix_lik, x_prop, prior, eps)
        if not np.isfinite(f_prop) or f_prop > f_prev:
            # Monotone safeguard.
            x_prop = x2
            f_prop = penalized_objective(matrix_lik, x_prop, prior, eps)

        x = x_prop
        if abs(f_prev - f_prop) <= tol * (1.0 + abs(f_prev)):
            break
        f_prev = f_prop

    return _sanitize_pi(x, eps)


def _slsqp_optimize_pi(matrix_lik: np.ndarray, pi_init: np.ndarray, prior: np.ndarray, max_iter: int, tol: float) -> np.ndarray:
    """Optimize mixture proportions on the simplex with SciPy SLSQP."""
    K = matrix_lik.shape[1]
    eps = 1e-12

    result = minimize(
        lambda pi: penalized_objective(matrix_lik, pi, prior, eps),
        _sanitize_pi(pi_init, eps),
        method="SLSQP",
        jac=lambda pi: _objective_grad(matrix_lik, pi, prior, eps),
        bounds=[(eps, 1.0)] * K,
        constraints=[{"type": "eq", "fun": lambda x: np.sum(x) - 1.0}],
        options={"maxiter": int(max_iter), "ftol": float(tol), "disp": False},
    )
    if not result.success:
        raise RuntimeError(f"SLSQP optimization failed: {result.message}")

    pi = np.maximum(np.asarray(result.x, dtype=float), eps)
    return pi / np.sum(pi)


_SOLVERS = {
    "slsqp": _slsqp_optimize_pi,
    "squarem": _squarem_optimize_pi,
    "em": _em_optimize_pi,
}

_FALLBACK = {
    "slsqp": ("slsqp", "squarem", "em"),
    "squarem": ("squarem", "em"),
    "em": ("em",),
    "auto": ("squarem", "slsqp", "em"),
}


def optimize_pi(
    matrix_lik: np.ndarray,
    pi_init: np.ndarray | None = None,
    prior: np.ndarray | None = None,
    method: str = "slsqp",
    control: dict | None = None,
) -> np.ndarray:
    """Estimate mixture proportions from a likelihood matrix.

    Maximizes ``sum_j log(sum_k L_jk pi_k) + sum_k (prior_k - 1) log pi_k``
    over the simplex.

    Supported methods:
    - ``slsqp``: constrained SciPy SLSQP (falls back to squarem, then em)
    - ``squarem``: accelerated EM fixed-point iteration
    - ``em``: plain EM
    - ``auto``: squarem first, then the others on failure

    ``control`` may carry ``max_iter`` and ``tol``.
    """
    matrix_lik = np.asarray(matrix_lik, dtype=float)
    if matrix_lik.ndim != 2:
        raise ValueError("matrix_lik must be 2D")
    if np.any(matrix_lik < 0) or np.any(~np.isfinite(matrix_lik)):
        raise ValueError("matrix_lik must contain finite non-negative values")

    K = matrix_lik.shape[1]
    pi_init = initialize_pi(K) if pi_init is None else np.asarray(pi_init, dtype=float)
    prior = np.ones(K, dtype=float) if prior is None else np.asarray(prior, dtype=float)
    if pi_init.shape != (K,):
        raise ValueError("pi_init has wrong length")
    if prior.shape != (K,):
        raise ValueError("prior has wrong length")

    normalized = method.lower()
    if normalized not in _METHODS:
        raise ValueError(f"method must be one of {', '.join(repr(m) for m in _METHODS)}")

    control = control or {}
    max_iter = int(control.get("max_iter", 2000))
    tol = float(control.get("tol", 1e-8))

    last_exc: Exception | None = None
    for candidate in _FALLBACK[normalized]:
        try:
            return _SOLVERS[candidate](matrix_lik, pi_init, prior, max_iter, tol)
        except (RuntimeError, ValueError, np.linalg.LinAlgError) as exc:
            logger.debug("optimize_pi: %s failed (%s); trying next method", candidate, exc)
            last_exc = exc

    raise RuntimeError(f"All optimization methods failed; last error: {last_exc}")


__all__ = ["initialize_pi", "optimize_pi", "penalized_objective"]
