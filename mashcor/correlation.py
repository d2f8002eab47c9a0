from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging
import warnings

import numpy as np

from ._numerics import cov2cor
from .data import MashData
from .errors import InsufficientNullDataError, UnsupportedDataShapeError
from .oracle import MixtureFitter, MixtureModel, fit_mash_V
from .priors import PriorScheme, penalty, set_prior

logger = logging.getLogger(__name__)


class EstimationStatus(str, Enum):
    CONVERGED = "converged"
    MAX_ITER = "max_iter"


@dataclass
class TraceEntry:
    """``V`` and the model fitted with it, as they stood before an update."""

    V: np.ndarray
    mash_model: MixtureModel


@dataclass
class NullCorrelationResult:
    """Output of :func:`estimate_null_correlation`.

    Attributes
    ----------
    V : np.ndarray
        Estimated correlation (or covariance) matrix, shape ``(R, R)``.
    mash_model : MixtureModel
        Model fitted with the final ``V``.
    loglik : np.ndarray
        Penalized log-likelihood after the initial fit and after each
        iteration (length ``niter``).
    niter : int
        Number of model fits: the initial fit plus one per iteration.
    status : EstimationStatus
        ``CONVERGED`` if the improvement dropped to ``tol`` or below,
        ``MAX_ITER`` if the iteration budget ran out first.
    init_fallback : bool
        True when the simple initializer failed and the identity matrix
        was used as the starting value.
    trace : list of TraceEntry or None
        With ``track_fit=True``, one entry per iteration holding the state
        at the start of that iteration.
    """

    V: np.ndarray
    mash_model: MixtureModel
    loglik: np.ndarray
    niter: int
    status: EstimationStatus
    init_fallback: bool = False
    trace: list[TraceEntry] | None = field(default=None)

    @property
    def converged(self) -> bool:
        return self.status is EstimationStatus.CONVERGED


def estimate_null_correlation_simple(data: MashData, z_thresh: float = 2.0, est_cor: bool = True) -> np.ndarray:
    """Estimate the null correlation structure among conditions.

    Identifies putatively null effects (those with |z| < ``z_thresh`` in
    all conditions) and returns the empirical correlation (or covariance)
    matrix of their z-scores. This captures residual correlations among
    conditions that are not due to true effects.

    Dropping rows with a large |z| truncates the null distribution, so the
    estimate is biased toward zero: with 1000 null effects at correlation
    0.5, ``z_thresh=2`` gives about 0.41.

    Parameters
    ----------
    data : MashData
        Data object created by :func:`~mashcor.data.mash_set_data`.
    z_thresh : float
        Z-score threshold for selecting null-ish effects.
    est_cor : bool
        If True, return a correlation matrix; if False, return covariance.

    Returns
    -------
    np.ndarray
        Estimated null correlation (or covariance) matrix, shape ``(R, R)``.

    Raises
    ------
    InsufficientNullDataError
        If fewer than ``R`` effects pass the threshold.

    Examples
    --------
    >>> Vhat = estimate_null_correlation_simple(data, z_thresh=2.0)
    >>> data_v = mash_update_data(data, V=Vhat)
    """
    z = data.Bhat / data.Shat
    nullish = np.max(np.abs(z), axis=1) < z_thresh
    n_null = int(np.sum(nullish))
    if n_null < data.n_conditions:
        raise InsufficientNullDataError(n_null, data.n_conditions, z_thresh)

    Vhat = np.atleast_2d(np.cov(z[nullish], rowvar=False))
    if est_cor:
        return cov2cor(Vhat)
    return Vhat


def null_correlation_lower_bound(data: MashData) -> np.ndarray:
    """Pairwise lower bound on the null correlation.

    With ``z_r = mu_r + e_r`` and unit-variance noise,
    ``E[(z_r - z_s)^2] >= 2 (1 - cor(e_r, e_s))``, so
    ``1 - mean((z_r - z_s)^2) / 2`` bounds the correlation from below.
    """
    z = data.Bhat / data.Shat
    diff = z[:, :, None] - z[:, None, :]
    return 1.0 - 0.5 * np.mean(diff * diff, axis=0)


def E_V(data: MashData, m_model: MixtureModel) -> np.ndarray:
    """M-step update of the residual covariance from posterior moments.

    Under ``z_j = mu_j + e_j``, ``e_j ~ N(0, V)`` on the z-score scale, the
    expected complete-data log-likelihood is maximized by
    ``mean_j E[(z_j - mu_j)(z_j - mu_j)^T]``. Posterior means and
    covariances from ``m_model`` are moved to the z-score scale by dividing
    by ``Shat * Shat_alpha``.
    """
    post_mean = m_model.posterior_means()
    post_cov = m_model.posterior_covariances()

    Z = data.Bhat / data.Shat
    S = data.Shat * data.Shat_alpha
    J, R = Z.shape
    if post_mean.shape != (J, R) or post_cov.shape != (J, R, R):
        raise ValueError(
            f"posterior moments must have shapes ({J}, {R}) and ({J}, {R}, {R}); "
            f"got {post_mean.shape} and {post_cov.shape}"
        )

    M = post_mean / S
    cross = M.T @ Z
    T1 = Z.T @ Z
    T2 = cross + cross.T
    T3 = np.sum(post_cov / (S[:, :, None] * S[:, None, :]), axis=0) + M.T @ M
    return (T1 - T2 + T3) / float(J)


def _penalized_loglik(m_model: MixtureModel, prior_v: np.ndarray) -> float:
    return m_model.loglikelihood() + penalty(prior_v, m_model.mixture_weights())


def estimate_null_correlation(
    data: MashData,
    Ulist: dict[str, np.ndarray] | list[np.ndarray],
    init: np.ndarray | None = None,
    max_iter: int = 30,
    tol: float = 1.0,
    est_cor: bool = True,
    track_fit: bool = False,
    prior: str | PriorScheme | np.ndarray = PriorScheme.NULLBIASED,
    fitter: MixtureFitter | None = None,
    details: bool = True,
    **kwargs,
) -> NullCorrelationResult | np.ndarray:
    """Estimate the null correlation matrix by maximum likelihood.

    Alternates between fitting the mixture model for the current ``V``
    and replacing ``V`` by the M-step update :func:`E_V` (normalized to a
    correlation matrix when ``est_cor``). Each fit is scored by its
    log-likelihood plus the prior penalty on the mixture weights. The loop
    stops at the first iteration whose improvement is ``<= tol``,
    including a decrease, whose ``V`` is still kept, or after ``max_iter``
    iterations.

    This can be slow; :func:`estimate_null_correlation_simple` gives a quick
    approximation.

    Parameters
    ----------
    data : MashData
        Data object. Contrast-transformed data are not supported.
    Ulist : dict or list of np.ndarray
        Candidate covariance matrices for the mixture model.
    init : np.ndarray, optional
        Initial ``V``. Defaults to :func:`estimate_null_correlation_simple`;
        if that fails for lack of null effects, the identity is used with a
        ``RuntimeWarning`` and ``init_fallback`` set on the result.
    max_iter : int
        Maximum number of iterations after the initial fit.
    tol : float
        Stop once the penalized log-likelihood improves by at most this
        much. The default of 1 is coarse.
    est_cor : bool
        If True, estimate a correlation matrix; otherwise a covariance.
    track_fit : bool
        If True, record the pre-update ``(V, model)`` of every iteration
        in ``trace``.
    prior : str, PriorScheme or np.ndarray
        Penalty on the mixture weights: ``"nullbiased"`` or ``"uniform"``.
    fitter : callable, optional
        Mixture-model fitter, see :class:`~mashcor.oracle.MixtureFitter`.
        Defaults to :func:`~mashcor.oracle.mash_fitter`.
    details : bool
        If False, return only the estimated matrix.
    **kwargs
        Passed to the fitter (e.g. ``grid``, ``optmethod``, ``nullweight``).

    Returns
    -------
    NullCorrelationResult or np.ndarray

    Examples
    --------
    >>> U_c = cov_canonical(data)
    >>> res = estimate_null_correlation(data, U_c, prior="uniform")
    >>> data_v = mash_update_data(data, V=res.V)
    """
    if not isinstance(data, MashData):
        raise TypeError("data is not a MashData object")
    if data.L is not None:
        raise UnsupportedDataShapeError("Cannot estimate the null correlation for contrast-transformed data")
    if isinstance(prior, str):
        try:
            prior = PriorScheme(prior.lower())
        except ValueError:
            raise ValueError("prior must be 'nullbiased' or 'uniform'") from None

    R = data.n_conditions
    init_fallback = False
    if init is None:
        try:
            init = estimate_null_correlation_simple(data, est_cor=est_cor)
        except InsufficientNullDataError as exc:
            logger.warning("Simple initializer failed: %s", exc)
            warnings.warn(
                f"Using the identity matrix as the initial null correlation ({exc}).",
                RuntimeWarning,
                stacklevel=2,
            )
            init = np.eye(R, dtype=float)
            init_fallback = True
    V = np.array(init, dtype=float)
    if V.shape != (R, R):
        raise ValueError(f"init must have shape ({R}, {R})")

    m_model = fit_mash_V(data, Ulist, V, prior=prior, fitter=fitter, **kwargs)
    prior_v = set_prior(m_model.mixture_weights().size, prior, nullweight=kwargs.get("nullweight", 10.0))
    log_liks = [_penalized_loglik(m_model, prior_v)]
    logger.info("Initial penalized log-likelihood: %.6f", log_liks[0])

    tracking: list[TraceEntry] = []
    status = EstimationStatus.MAX_ITER
    niter = 0
    while niter < max_iter:
        niter += 1
        if track_fit:
            tracking.append(TraceEntry(V=V, mash_model=m_model))

        V = E_V(data, m_model)
        if est_cor:
            V = cov2cor(V)
        m_model = fit_mash_V(data, Ulist, V, prior=prior, fitter=fitter, **kwargs)
        log_liks.append(_penalized_loglik(m_model, prior_v))

        delta_ll = log_liks[-1] - log_liks[-2]
        logger.info("Iteration %d: penalized log-likelihood %.6f (change %.6g)", niter, log_liks[-1], delta_ll)
        if delta_ll <= tol:
            status = EstimationStatus.CONVERGED
            break

    if status is EstimationStatus.CONVERGED:
        logger.info("Converged after %d iterations", niter)
    else:
        logger.info("Stopped at max_iter=%d without reaching tol=%g", max_iter, tol)

    result = NullCorrelationResult(
        V=V,
        mash_model=m_model,
        loglik=np.asarray(log_liks, dtype=float),
        niter=niter + 1,
        status=status,
        init_fallback=init_fallback,
        trace=tracking if track_fit else None,
    )
    if details:
        return result
    return result.V


__all__ = [
    "EstimationStatus",
    "TraceEntry",
    "NullCorrelationResult",
    "estimate_null_correlation_simple",
    "null_correlation_lower_bound",
    "E_V",
    "estimate_null_correlation",
]
