from __future__ import annotations

import numpy as np

from .mash import MashResult

_PI_DIMENSIONS = ("cov", "grid", "all")


def _require(m: MashResult, attr: str) -> np.ndarray:
    value = getattr(m, attr)
    if value is None:
        raise ValueError(f"{attr} is not available in this result")
    return value


def get_pm(m: MashResult) -> np.ndarray:
    return _require(m, "posterior_mean")


def get_psd(m: MashResult) -> np.ndarray:
    return _require(m, "posterior_sd")


def get_loglik(m: MashResult) -> float:
    return float(m.loglik)


def get_estimated_pi(m: MashResult, dimension: str = "cov") -> np.ndarray:
    """Mixture weights of a fitted model, optionally collapsed.

    ``"cov"`` sums over grid values for each candidate matrix, ``"grid"``
    sums over candidate matrices for each grid value and ``"all"`` returns
    the flat vector the prior penalty is evaluated on. The point-mass
    weight, when present, stays in front.
    """
    dimension = dimension.lower()
    if dimension not in _PI_DIMENSIONS:
        raise ValueError(f"dimension must be one of {', '.join(repr(d) for d in _PI_DIMENSIONS)}")

    g = m.fitted_g
    pi = np.asarray(g.pi, dtype=float)
    if dimension == "all":
        return pi

    head, body = (pi[:1], pi[1:]) if g.usepointmass else (pi[:0], pi)
    n_u = len(g.Ulist)
    if body.size % n_u:
        raise ValueError("pi shape does not match Ulist x grid dimensions")
    # rows: grid values, columns: candidate matrices
    table = body.reshape(-1, n_u)
    collapsed = table.sum(axis=0) if dimension == "cov" else table.sum(axis=1)
    return np.concatenate([head, collapsed])


__all__ = ["get_pm", "get_psd", "get_loglik", "get_estimated_pi"]
