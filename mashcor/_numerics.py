from __future__ import annotations

import numpy as np
from scipy.linalg import solve_triangular

_LOG_2PI = np.log(2.0 * np.pi)


def _degenerate_logpdf(X: np.ndarray, mean: np.ndarray) -> np.ndarray:
    # Singular covariance: all mass sits on the mean.
    at_mean = np.sum(np.abs(X - mean), axis=-1) < 1e-6
    return np.where(at_mean, np.inf, -np.inf)


def mvn_logpdf_batch(X: np.ndarray, mean: np.ndarray, sigma: np.ndarray) -> np.ndarray:
    """Log-density of every row of ``X`` under ``N(mean, sigma)``."""
    X = np.asarray(X, dtype=float)
    mean = np.asarray(mean, dtype=float)
    sigma = np.asarray(sigma, dtype=float)
    R = mean.size
    if X.ndim != 2 or X.shape[1] != R or sigma.shape != (R, R):
        raise ValueError(f"expected X (n, {R}) and sigma ({R}, {R}); got {X.shape} and {sigma.shape}")

    try:
        chol = np.linalg.cholesky(sigma)
    except np.linalg.LinAlgError:
        return _degenerate_logpdf(X, mean)

    white = solve_triangular(chol, (X - mean).T, lower=True, check_finite=False)
    half_log_det = np.sum(np.log(np.diag(chol)))
    return -0.5 * (R * _LOG_2PI + np.sum(white * white, axis=0)) - half_log_det


def mvn_logpdf_stack(X: np.ndarray, sigma_stack: np.ndarray) -> np.ndarray:
    """Zero-mean log-density of row ``X[j]`` under its own ``sigma_stack[j]``."""
    X = np.asarray(X, dtype=float)
    sigma_stack = np.asarray(sigma_stack, dtype=float)
    J, R = X.shape
    if sigma_stack.shape != (J, R, R):
        raise ValueError(f"sigma_stack must have shape {(J, R, R)}")

    try:
        chol = np.linalg.cholesky(sigma_stack)
    except np.linalg.LinAlgError:
        zero = np.zeros(R)
        return np.array([mvn_logpdf_batch(X[j : j + 1], zero, sigma_stack[j])[0] for j in range(J)])

    white = np.linalg.solve(chol, X[:, :, None])[:, :, 0]
    half_log_det = np.sum(np.log(np.diagonal(chol, axis1=1, axis2=2)), axis=1)
    return -0.5 * (R * _LOG_2PI + np.sum(white * white, axis=1)) - half_log_det


def cov2cor(V: np.ndarray) -> np.ndarray:
    """Rescale a covariance matrix to unit diagonal.

    Entries involving a zero variance are set to 0.
    """
    V = np.asarray(V, dtype=float)
    sd = np.sqrt(np.clip(np.diag(V), 0.0, None))
    with np.errstate(divide="ignore", invalid="ignore"):
        C = V / sd[:, None] / sd[None, :]
    C = np.where(np.isfinite(C), C, 0.0)
    np.fill_diagonal(C, 1.0)
    return C


__all__ = ["mvn_logpdf_batch", "mvn_logpdf_stack", "cov2cor"]
