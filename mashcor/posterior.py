from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .data import MashData, build_cov_stack


@dataclass
class PosteriorMatrices:
    posterior_mean: np.ndarray
    posterior_sd: np.ndarray
    posterior_cov: np.ndarray | None = None


def posterior_cov(Vinv: np.ndarray, U: np.ndarray) -> np.ndarray:
    R = U.shape[0]
    with np.errstate(all="ignore"):
        system = Vinv @ U + np.eye(R)
    try:
        solved = np.linalg.solve(system, np.eye(R))
    except np.linalg.LinAlgError:
        return np.zeros_like(U, dtype=float)
    with np.errstate(all="ignore"):
        out = U @ solved
    return np.where(np.isfinite(out), out, 0.0)


def posterior_cov_stack(Vinv_stack: np.ndarray, U: np.ndarray) -> np.ndarray:
    """Batched :func:`posterior_cov` over per-effect inverse covariances."""
    R = U.shape[0]
    system = Vinv_stack @ U[None, :, :] + np.eye(R)[None, :, :]
    solved = np.linalg.solve(system, np.broadcast_to(np.eye(R), system.shape))
    out = U[None, :, :] @ solved
    return np.where(np.isfinite(out), out, 0.0)


def compute_posterior_weights(pi: np.ndarray, lik_mat: np.ndarray) -> np.ndarray:
    pi = np.asarray(pi, dtype=float)
    lik_mat = np.asarray(lik_mat, dtype=float)
    d = lik_mat * pi[None, :]
    norm = np.maximum(np.sum(d, axis=1, keepdims=True), np.finfo(float).tiny)
    return d / norm


def compute_posterior_matrices(
    data: MashData,
    Ulist: list[np.ndarray],
    posterior_weights: np.ndarray,
    output_posterior_cov: bool = False,
) -> PosteriorMatrices:
    """Posterior mean, SD and (optionally) covariance of each effect.

    Each component ``p`` gives a normal posterior for the scaled effect
    ``theta_j`` with covariance ``U1 = U_p (V_j^{-1} U_p + I)^{-1}`` and
    mean ``U1 V_j^{-1} bhat_j``. Moments are mixed over components with
    ``posterior_weights`` and mapped back to the effect scale by
    ``Shat_alpha``.
    """
    J, R = data.Bhat.shape
    P = len(Ulist)
    w = np.asarray(posterior_weights, dtype=float)
    if w.shape != (J, P):
        raise ValueError(f"posterior_weights must have shape ({J}, {P})")

    sa = data.Shat_alpha
    post_mean = np.zeros((J, R), dtype=float)
    post_sec = np.zeros((J, R, R), dtype=float)

    common = data.is_common_cov_shat()
    if common:
        Vinv = np.linalg.inv(data.get_cov(0))
    else:
        Vinv_stack = np.linalg.inv(build_cov_stack(data))

    for p, U in enumerate(Ulist):
        if common:
            U1 = posterior_cov(Vinv, U)
            with np.errstate(all="ignore"):
                mu1 = data.Bhat @ (Vinv @ U1)
            cov_p = U1[None, :, :]
        else:
            cov_p = posterior_cov_stack(Vinv_stack, U)
            with np.errstate(all="ignore"):
                mu1 = (cov_p @ (Vinv_stack @ data.Bhat[:, :, None]))[:, :, 0]
        mu1 = np.where(np.isfinite(mu1), mu1, 0.0)

        mean_p = mu1 * sa
        cov_p = sa[:, :, None] * cov_p * sa[:, None, :]
        wp = w[:, p]
        post_mean += wp[:, None] * mean_p
        post_sec += wp[:, None, None] * (cov_p + np.einsum("jr,js->jrs", mean_p, mean_p))

    post_cov = post_sec - np.einsum("jr,js->jrs", post_mean, post_mean)
    post_cov = 0.5 * (post_cov + np.transpose(post_cov, (0, 2, 1)))
    post_sd = np.sqrt(np.maximum(np.diagonal(post_cov, axis1=1, axis2=2), 0.0))

    return PosteriorMatrices(
        posterior_mean=post_mean,
        posterior_sd=post_sd,
        posterior_cov=post_cov if output_posterior_cov else None,
    )


__all__ = [
    "PosteriorMatrices",
    "posterior_cov",
    "posterior_cov_stack",
    "compute_posterior_weights",
    "compute_posterior_matrices",
]
