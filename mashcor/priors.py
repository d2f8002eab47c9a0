from __future__ import annotations

from enum import Enum

import numpy as np

from .errors import UndefinedPenaltyError


class PriorScheme(str, Enum):
    """Named penalty schemes on mixture weights.

    ``NULLBIASED`` puts extra prior weight on the first (null) component,
    which favors concentrating mass there. ``UNIFORM`` applies no penalty.
    """

    NULLBIASED = "nullbiased"
    UNIFORM = "uniform"


def set_prior(K: int, prior: str | PriorScheme | np.ndarray, nullweight: float = 10.0) -> np.ndarray:
    """Resolve a prior scheme into a per-weight penalty vector of length K.

    Parameters
    ----------
    K : int
        Number of mixture weights.
    prior : str, PriorScheme or np.ndarray
        ``"nullbiased"``, ``"uniform"``, or an explicit vector of length K.
    nullweight : float
        Prior value for the first component under ``"nullbiased"``.

    Returns
    -------
    np.ndarray
        Vector of prior values; 1 means no penalty on that weight.
    """
    if isinstance(prior, str):
        try:
            scheme = PriorScheme(prior.lower())
        except ValueError:
            raise ValueError("prior must be 'uniform', 'nullbiased', or numeric vector") from None
        out = np.ones(K, dtype=float)
        if scheme is PriorScheme.NULLBIASED:
            out[0] = float(nullweight)
        return out

    arr = np.asarray(prior, dtype=float)
    if arr.shape != (K,):
        raise ValueError("prior has wrong length")
    return arr


def penalty(prior: np.ndarray, pi_s: np.ndarray) -> float:
    """Log prior penalty ``sum((prior - 1) * log(pi_s))`` over penalized weights.

    Weights whose prior equals 1 are skipped, so they may be zero. A zero
    weight whose prior differs from 1 has no finite penalty and raises
    :class:`~mashcor.errors.UndefinedPenaltyError`.
    """
    prior = np.asarray(prior, dtype=float)
    pi_s = np.asarray(pi_s, dtype=float)
    if prior.shape != pi_s.shape:
        raise ValueError("prior and pi_s must have the same length")

    subset = prior != 1.0
    zero = subset & (pi_s == 0.0)
    if np.any(zero):
        raise UndefinedPenaltyError(np.where(zero)[0])
    return float(np.sum((prior[subset] - 1.0) * np.log(pi_s[subset])))


__all__ = ["PriorScheme", "set_prior", "penalty"]
