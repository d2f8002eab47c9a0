from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from scipy.special import logsumexp

from .covariances import _to_ulist, expand_cov, normalize_Ulist, validate_Ulist
from .data import MashData
from .likelihoods import RelativeLikelihoodResult, calc_relative_lik_matrix
from .optimize import optimize_pi
from .posterior import compute_posterior_matrices, compute_posterior_weights
from .priors import PriorScheme, set_prior


@dataclass
class FittedG:
    """Mixture prior: weights ``pi`` over the components built by
    :func:`~mashcor.covariances.expand_cov` from ``Ulist`` and ``grid``
    (point mass first when ``usepointmass``)."""

    pi: np.ndarray
    Ulist: list[np.ndarray]
    grid: np.ndarray
    usepointmass: bool


@dataclass
class MashResult:
    """Mixture model fitted for one residual correlation ``V``.

    The null-correlation estimator reads it only through
    :meth:`loglikelihood`, :meth:`mixture_weights`, :meth:`posterior_means`
    and :meth:`posterior_covariances`.

    Attributes
    ----------
    posterior_mean, posterior_sd : np.ndarray or None
        ``(J, R)``; present when ``outputlevel >= 2``.
    loglik : float
        Log-likelihood summed over effects (``vloglik`` per effect).
    fitted_g : FittedG
    posterior_weights : np.ndarray
        ``(J, K_active)`` responsibilities of the retained components.
    posterior_cov : np.ndarray or None
        ``(J, R, R)``; present when ``outputlevel >= 3``.
    """

    posterior_mean: np.ndarray | None
    posterior_sd: np.ndarray | None
    loglik: float
    vloglik: np.ndarray
    fitted_g: FittedG
    posterior_weights: np.ndarray
    alpha: float
    posterior_cov: np.ndarray | None = None

    def loglikelihood(self) -> float:
        return float(self.loglik)

    def mixture_weights(self) -> np.ndarray:
        return np.asarray(self.fitted_g.pi, dtype=float)

    def posterior_means(self) -> np.ndarray:
        if self.posterior_mean is None:
            raise ValueError("posterior_mean is not available in this result (outputlevel >= 2)")
        return self.posterior_mean

    def posterior_covariances(self) -> np.ndarray:
        if self.posterior_cov is None:
            raise ValueError("posterior_cov is not available in this result (outputlevel >= 3)")
        return self.posterior_cov


def grid_min(Bhat: np.ndarray, Shat: np.ndarray) -> float:
    return float(np.min(Shat)) / 10.0


def grid_max(Bhat: np.ndarray, Shat: np.ndarray) -> float:
    excess = Bhat * Bhat - Shat * Shat
    if np.all(excess <= 0):
        return 8.0 * grid_min(Bhat, Shat)
    return 2.0 * float(np.sqrt(np.max(excess)))


def autoselect_grid(data: MashData, mult: float) -> np.ndarray:
    """Geometric grid from ``grid_min`` up to ``grid_max`` with ratio ``mult``.

    The range comes from entries with a finite, non-zero standard error.
    """
    ok = np.isfinite(data.Shat) & ~np.isclose(data.Shat, 0.0) & ~np.isnan(data.Bhat)
    b, s = data.Bhat[ok], data.Shat[ok]
    hi, lo = grid_max(b, s), grid_min(b, s)
    if mult == 0.0:
        return np.array([0.0, hi / 2.0])
    steps = int(np.ceil(np.log(hi / lo) / np.log(mult)))
    return hi * mult ** np.arange(-steps, 1, dtype=float)


def compute_vloglik(pi_s: np.ndarray, lm: RelativeLikelihoodResult, Shat_alpha: np.ndarray) -> np.ndarray:
    """Per-effect log marginal likelihood on the original effect scale."""
    with np.errstate(divide="ignore"):
        log_pi = np.log(np.asarray(pi_s, dtype=float))
    mix = logsumexp(lm.loglik_matrix + log_pi, axis=1)
    return mix + lm.lfactors - np.log(Shat_alpha).sum(axis=1)


def mash(
    data: MashData,
    Ulist: dict[str, np.ndarray] | list[np.ndarray],
    gridmult: float = np.sqrt(2.0),
    grid: np.ndarray | None = None,
    normalizeU: bool = True,
    usepointmass: bool = True,
    prior: str | PriorScheme | np.ndarray = PriorScheme.NULLBIASED,
    nullweight: float = 10.0,
    optmethod: str = "slsqp",
    control: dict | None = None,
    pi_thresh: float = 1e-10,
    outputlevel: int = 2,
) -> MashResult:
    """Fit the normal mixture model for the data's current ``V``.

    The prior on each effect is a mixture of ``N(0, g^2 U)`` over the
    candidate matrices ``U`` and grid values ``g``, plus an optional point
    mass at zero. Mixture weights are estimated by penalized maximum
    likelihood; posterior summaries follow for each effect.

    Parameters
    ----------
    data : MashData
    Ulist : dict or list of np.ndarray
        Candidate covariance matrices.
    gridmult : float
        Ratio of the automatically selected grid; ignored when ``grid`` is
        given.
    grid : np.ndarray, optional
    normalizeU : bool
        Scale each candidate to unit maximum diagonal first.
    usepointmass : bool
    prior : str, PriorScheme or np.ndarray
        Penalty on the weights, see :func:`~mashcor.priors.set_prior`.
    nullweight : float
        First-component prior under ``"nullbiased"``.
    optmethod : str
        See :func:`~mashcor.optimize.optimize_pi`.
    control : dict, optional
        Optimizer options (``max_iter``, ``tol``).
    pi_thresh : float
        Components with smaller weight are left out of the posterior.
    outputlevel : int
        1: weights and log-likelihood only. 2: plus posterior mean and SD.
        3: plus posterior covariances, as :func:`~mashcor.correlation.E_V`
        needs.

    Examples
    --------
    >>> data = mash_set_data(sim["Bhat"], sim["Shat"])
    >>> result = mash(data, Ulist=cov_canonical(data), outputlevel=3)
    """
    base = _to_ulist(Ulist)
    if normalizeU:
        base = normalize_Ulist(base)
    validate_Ulist(base, data.n_conditions)
    grid = autoselect_grid(data, gridmult) if grid is None else np.asarray(grid, dtype=float)

    components = expand_cov(base, grid, usepointmass=usepointmass)
    lm = calc_relative_lik_matrix(data, components)
    rel_lik = np.exp(lm.loglik_matrix)

    prior_vec = set_prior(len(components), prior, nullweight=nullweight)
    pi_s = optimize_pi(rel_lik, prior=prior_vec, method=optmethod, control=control)

    active = np.flatnonzero(pi_s > pi_thresh)
    if active.size == 0:
        active = np.array([np.argmax(pi_s)])
    weights = compute_posterior_weights(pi_s[active], rel_lik[:, active])

    post = None
    if outputlevel >= 2:
        post = compute_posterior_matrices(
            data, [components[k] for k in active], weights, output_posterior_cov=outputlevel >= 3
        )

    vloglik = compute_vloglik(pi_s, lm, data.Shat_alpha)
    return MashResult(
        posterior_mean=None if post is None else post.posterior_mean,
        posterior_sd=None if post is None else post.posterior_sd,
        loglik=float(vloglik.sum()),
        vloglik=vloglik,
        fitted_g=FittedG(pi=pi_s, Ulist=base, grid=grid, usepointmass=usepointmass),
        posterior_weights=weights,
        alpha=data.alpha,
        posterior_cov=None if post is None else post.posterior_cov,
    )


__all__ = [
    "FittedG",
    "MashResult",
    "grid_min",
    "grid_max",
    "autoselect_grid",
    "compute_vloglik",
    "mash",
]
