from __future__ import annotations

from dataclasses import dataclass
import warnings

import numpy as np

from ._numerics import mvn_logpdf_batch, mvn_logpdf_stack
from .data import MashData, build_cov_stack


@dataclass
class RelativeLikelihoodResult:
    loglik_matrix: np.ndarray
    lfactors: np.ndarray


def calc_lik_matrix(data: MashData, Ulist: list[np.ndarray], log: bool = False) -> np.ndarray:
    """Compute the JxP matrix of component likelihoods p(bhat_j | U_p, V_j).

    ``V_j`` is the residual covariance of effect j, ``diag(s_j) V diag(s_j)``.
    When every effect shares the same standard errors a single covariance is
    factorized per component.
    """
    J = data.n_effects
    P = len(Ulist)
    out = np.empty((J, P), dtype=float)

    if data.is_common_cov_shat():
        sigma0 = data.get_cov(0)
        zero = np.zeros(data.n_conditions, dtype=float)
        for p, U in enumerate(Ulist):
            out[:, p] = mvn_logpdf_batch(data.Bhat, zero, sigma0 + U)
    else:
        cov_stack = build_cov_stack(data)
        for p, U in enumerate(Ulist):
            out[:, p] = mvn_logpdf_stack(data.Bhat, cov_stack + U[None, :, :])

    if np.any(~np.isfinite(out)):
        cols = np.where(np.any(~np.isfinite(out), axis=0))[0]
        warnings.warn(
            "Some mixture components produced non-finite likelihoods; "
            f"columns: {', '.join(map(str, cols.tolist()))}",
            RuntimeWarning,
            stacklevel=2,
        )

    if log:
        return out
    return np.exp(out)


def calc_relative_lik_matrix(data: MashData, Ulist: list[np.ndarray]) -> RelativeLikelihoodResult:
    matrix_llik = calc_lik_matrix(data, Ulist, log=True)
    lfactors = np.max(matrix_llik, axis=1)
    matrix_llik = matrix_llik - lfactors[:, None]
    return RelativeLikelihoodResult(loglik_matrix=matrix_llik, lfactors=lfactors)


__all__ = [
    "RelativeLikelihoodResult",
    "calc_lik_matrix",
    "calc_relative_lik_matrix",
]
