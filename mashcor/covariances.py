from __future__ import annotations

from collections.abc import Iterable

import numpy as np

from .data import MashData

CANONICAL_METHODS = ("identity", "singletons", "equal_effects", "simple_het")


def _to_ulist(Ulist: dict[str, np.ndarray] | Iterable[np.ndarray]) -> list[np.ndarray]:
    mats = [np.asarray(u, dtype=float) for u in (Ulist.values() if isinstance(Ulist, dict) else Ulist)]
    if len(mats) == 0:
        raise ValueError("Ulist cannot be empty")
    return mats


def _identity(R: int) -> dict[str, np.ndarray]:
    return {"identity": np.eye(R)}


def _singletons(R: int) -> dict[str, np.ndarray]:
    # One effect active in condition r only.
    basis = np.eye(R)
    return {f"singleton_{r + 1}": np.outer(basis[r], basis[r]) for r in range(R)}


def _equal_effects(R: int) -> dict[str, np.ndarray]:
    return {"equal_effects": np.ones((R, R))}


def _simple_het(R: int, corr: Iterable[float] = (0.25, 0.5, 0.75)) -> dict[str, np.ndarray]:
    out: dict[str, np.ndarray] = {}
    for i, rho in enumerate(corr, start=1):
        if not -1.0 <= rho <= 1.0:
            raise ValueError("corr must be between -1 and 1")
        out[f"simple_het_{i}"] = (1.0 - rho) * np.eye(R) + rho * np.ones((R, R))
    return out


def _null(R: int) -> dict[str, np.ndarray]:
    return {"null": np.zeros((R, R))}


_BUILDERS = {
    "identity": _identity,
    "singletons": _singletons,
    "equal_effects": _equal_effects,
    "simple_het": _simple_het,
    "null": _null,
}


def cov_canonical(data: MashData, methods: Iterable[str] = CANONICAL_METHODS) -> dict[str, np.ndarray]:
    """Named canonical effect-sharing covariance matrices.

    These are the usual candidates handed to
    :func:`~mashcor.correlation.estimate_null_correlation`. ``methods``
    picks from ``"identity"`` (independent effects), ``"singletons"`` (one
    per condition), ``"equal_effects"`` (fully shared), ``"simple_het"``
    (shared with correlation 0.25, 0.5 and 0.75) and ``"null"``.

    Examples
    --------
    >>> U_c = cov_canonical(data)
    >>> list(U_c.keys())[:3]
    ['identity', 'singleton_1', 'singleton_2']
    """
    R = data.n_conditions
    out: dict[str, np.ndarray] = {}
    for method in methods:
        builder = _BUILDERS.get(method.lower())
        if builder is None:
            raise ValueError(f"Unknown covariance method: {method}")
        out.update(builder(R))
    return out


def normalize_cov(U: np.ndarray) -> np.ndarray:
    """Scale ``U`` so its largest diagonal entry is 1 (all-zero ``U`` is left as is)."""
    U = np.asarray(U, dtype=float)
    top = float(np.max(np.diag(U)))
    return U / top if top != 0.0 else U.copy()


def normalize_Ulist(Ulist: dict[str, np.ndarray] | Iterable[np.ndarray]) -> list[np.ndarray]:
    return list(map(normalize_cov, _to_ulist(Ulist)))


def validate_Ulist(Ulist: list[np.ndarray], R: int) -> None:
    """Check every candidate is an ``(R, R)`` symmetric PSD matrix."""
    for i, U in enumerate(Ulist):
        if U.shape != (R, R):
            raise ValueError(f"Ulist[{i}] must be of shape ({R}, {R}); got {U.shape}")
        if not np.allclose(U, U.T, atol=1e-10, rtol=0.0):
            raise ValueError(f"Ulist[{i}] must be symmetric")
        if np.linalg.eigvalsh(U)[0] < -1e-8:
            raise ValueError(f"Ulist[{i}] must be positive semidefinite")


def expand_cov(
    Ulist: dict[str, np.ndarray] | Iterable[np.ndarray],
    grid: Iterable[float],
    usepointmass: bool = True,
) -> list[np.ndarray]:
    """Scale covariance matrices by a grid and optionally prepend a null.

    Each base matrix is multiplied by each squared grid value, ordered
    grid-major (all matrices for ``grid[0]``, then ``grid[1]``, ...). With
    ``usepointmass`` a zero matrix comes first. This ordering is the
    layout of the flattened mixture-weight vector.
    """
    mats = _to_ulist(Ulist)
    scales = np.square(np.asarray(list(grid), dtype=float))
    if scales.ndim != 1 or scales.size == 0:
        raise ValueError("grid must be a non-empty 1D array")
    out = [s * U for s in scales for U in mats]
    if usepointmass:
        out.insert(0, np.zeros_like(mats[0]))
    return out


__all__ = [
    "CANONICAL_METHODS",
    "cov_canonical",
    "normalize_cov",
    "normalize_Ulist",
    "validate_Ulist",
    "expand_cov",
]
