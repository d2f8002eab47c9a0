from __future__ import annotations

import numpy as np


def _noise(rng: np.random.Generator, n: int, ncond: int, err_sd: float, V: np.ndarray | None) -> np.ndarray:
    if V is None:
        return rng.normal(scale=err_sd, size=(n, ncond))
    V = np.asarray(V, dtype=float)
    if V.shape != (ncond, ncond):
        raise ValueError(f"V must have shape ({ncond}, {ncond})")
    return rng.multivariate_normal(np.zeros(ncond), (err_sd * err_sd) * V, size=n)


def simple_sims(
    nsamp: int = 100,
    ncond: int = 5,
    err_sd: float = 0.01,
    seed: int | None = None,
    V: np.ndarray | None = None,
) -> dict[str, np.ndarray]:
    """Simulate data with four effect types.

    Generates ``4 * nsamp`` effects across ``ncond`` conditions: null,
    independent, condition-1-specific, and equal (shared). Noise is
    ``N(0, err_sd^2 V)`` per effect, independent across conditions when
    ``V`` is None.

    Returns
    -------
    dict
        ``{"B": true_effects, "Bhat": observed, "Shat": standard_errors}``,
        each an ``(4*nsamp, ncond)`` array.

    Examples
    --------
    >>> sim = simple_sims(500, ncond=5, err_sd=1.0, seed=42)
    >>> sim["Bhat"].shape
    (2000, 5)
    """
    rng = np.random.default_rng(seed)
    n = 4 * nsamp
    B = np.zeros((n, ncond))
    # blocks: null, independent, condition-1-specific, shared
    B[nsamp : 2 * nsamp] = rng.normal(size=(nsamp, ncond))
    B[2 * nsamp : 3 * nsamp, 0] = rng.normal(size=nsamp)
    B[3 * nsamp :] = rng.normal(size=(nsamp, 1))

    Bhat = B + _noise(rng, n, ncond, err_sd, V)
    return {"B": B, "Bhat": Bhat, "Shat": np.full((n, ncond), float(err_sd))}


def null_sims(n: int = 1000, V: np.ndarray | None = None, ncond: int = 2, seed: int | None = None) -> dict[str, np.ndarray]:
    """Simulate ``n`` null effects whose z-scores have correlation ``V``.

    ``Shat`` is all ones, so ``Bhat`` holds the z-scores directly.
    """
    if V is not None:
        ncond = np.asarray(V).shape[0]
    rng = np.random.default_rng(seed)
    Bhat = _noise(rng, n, ncond, 1.0, V)
    return {"B": np.zeros_like(Bhat), "Bhat": Bhat, "Shat": np.ones_like(Bhat)}


__all__ = ["simple_sims", "null_sims"]
