from __future__ import annotations

from dataclasses import dataclass, replace
import warnings

import numpy as np

from ._numerics import cov2cor


@dataclass
class MashData:
    """Effect estimates across conditions plus their residual correlation.

    Built by :func:`mash_set_data`; copied (never modified) by
    :func:`mash_update_data`.

    Attributes
    ----------
    Bhat, Shat : np.ndarray
        ``(J, R)`` effects and standard errors, after alpha scaling.
    Shat_alpha : np.ndarray
        ``(J, R)`` factor divided out of ``Bhat`` when ``alpha != 0``; ones
        otherwise.
    V : np.ndarray
        ``(R, R)`` residual correlation shared by all effects.
    alpha : float
    L : np.ndarray or None
        Contrast matrix when the data were moved to contrast space.
    Shat_orig : np.ndarray or None
        Standard errors before the contrast, used to rebuild ``Shat`` when
        ``V`` changes.
    """

    Bhat: np.ndarray
    Shat: np.ndarray
    Shat_alpha: np.ndarray
    V: np.ndarray
    alpha: float
    L: np.ndarray | None = None
    Shat_orig: np.ndarray | None = None

    @property
    def n_effects(self) -> int:
        return self.Bhat.shape[0]

    @property
    def n_conditions(self) -> int:
        return self.Bhat.shape[1]

    def get_cov(self, j: int) -> np.ndarray:
        """Residual covariance ``diag(s_j) V diag(s_j)`` of effect j (mapped through ``L`` if set)."""
        if not 0 <= j < self.n_effects:
            raise IndexError("j out of bounds")
        s = self.Shat[j] if self.L is None else self.Shat_orig[j]
        sigma = s[:, None] * self.V * s[None, :]
        if self.L is None:
            return sigma
        return self.L @ sigma @ self.L.T

    def is_common_cov_shat(self) -> bool:
        """True when every effect has the same standard errors."""
        S = self.Shat if self.L is None else self.Shat_orig
        return bool(np.all(np.isclose(S, S[:1], equal_nan=True)))


def _matrix(x, name: str, shape: tuple[int, int] | None = None) -> np.ndarray:
    arr = np.array(x, dtype=float)
    if arr.ndim == 0 and shape is not None:
        return np.full(shape, float(arr))
    if arr.ndim != 2:
        raise ValueError(f"{name} must be a 2D array")
    return arr


def _check_positive_definite(x: np.ndarray, name: str) -> None:
    if x.ndim != 2 or x.shape[0] != x.shape[1]:
        raise ValueError(f"{name} must be a square matrix")
    if not np.isfinite(x).all():
        raise ValueError(f"{name} must be finite")
    if np.max(np.abs(x - x.T), initial=0.0) > 1e-10:
        raise ValueError(f"{name} must be symmetric")
    try:
        np.linalg.cholesky(x)
    except np.linalg.LinAlgError as exc:
        raise ValueError(f"{name} must be positive definite") from exc


def _validate_v(V: np.ndarray, R: int, v_ridge: float) -> np.ndarray:
    vmat = np.asarray(V, dtype=float)
    if v_ridge > 0:
        vmat = regularize_cov(vmat, ridge=v_ridge)
    if vmat.shape != (R, R):
        raise ValueError(f"V has shape {vmat.shape}, which does not match the {R} conditions")
    _check_positive_definite(vmat, "V")
    return vmat


def _reset_zero_shat(
    bhat: np.ndarray, shat: np.ndarray, tol: float, both_reset: float, shat_reset: float
) -> None:
    tiny = shat <= tol
    if not tiny.any():
        return
    both = tiny & (np.abs(bhat) <= tol)
    if both.any():
        if both_reset <= 0:
            raise ValueError(
                "Bhat and Shat are both (near) zero for some entries; set zero_Bhat_Shat_reset to replace them"
            )
        shat[both] = both_reset
        tiny &= ~both
        if not tiny.any():
            return
    if shat_reset <= 0:
        raise ValueError("Shat has (near) zero entries; set zero_Shat_reset to replace them")
    shat[tiny] = shat_reset


def _warn_if_shat_varies(shat: np.ndarray) -> None:
    se = shat[np.isfinite(shat) & (shat > 0.0)]
    if se.size < 2:
        return
    cv = float(np.std(se) / max(float(np.mean(se)), np.finfo(float).tiny))
    if cv > 1.0:
        warnings.warn(
            f"Standard errors vary widely (CV={cv:.2f}); consider alpha=1 (z-score scale).",
            RuntimeWarning,
            stacklevel=3,
        )


def regularize_cov(V: np.ndarray, ridge: float = 1e-6, to_correlation: bool = False) -> np.ndarray:
    """Add ``ridge`` to the diagonal of ``V`` and symmetrize it."""
    if ridge < 0:
        raise ValueError("ridge must be non-negative")
    V = np.asarray(V, dtype=float)
    if V.ndim != 2 or V.shape[0] != V.shape[1]:
        raise ValueError("V must be a square matrix")
    out = 0.5 * (V + V.T) + ridge * np.eye(V.shape[0])
    return cov2cor(out) if to_correlation else out


def mash_set_data(
    Bhat: np.ndarray,
    Shat: np.ndarray | float | None = None,
    alpha: float = 0.0,
    V: np.ndarray | None = None,
    v_ridge: float = 0.0,
    zero_check_tol: float = np.finfo(float).eps,
    zero_Bhat_Shat_reset: float = 0.0,
    zero_Shat_reset: float = 0.0,
) -> MashData:
    """Validate effect estimates and wrap them in a :class:`MashData`.

    Parameters
    ----------
    Bhat : np.ndarray
        ``(J, R)`` observed effects. Missing entries (NaN) become 0 with
        standard error 1e6.
    Shat : np.ndarray or float, optional
        ``(J, R)`` standard errors or a scalar; defaults to 1.
    alpha : float
        0 models raw effects, 1 models z-scores. The z-scores ``Bhat /
        Shat`` seen by the null-correlation estimators do not depend on it.
    V : np.ndarray, optional
        ``(R, R)`` residual correlation; defaults to the identity.
    v_ridge : float
        Ridge added to ``V`` before it is checked for positive definiteness.
    zero_check_tol, zero_Bhat_Shat_reset, zero_Shat_reset : float
        Standard errors at or below ``zero_check_tol`` are an error unless
        a positive replacement value is given.

    Examples
    --------
    >>> data = mash_set_data(sim["Bhat"], sim["Shat"])
    >>> data.n_effects, data.n_conditions
    (2000, 5)
    """
    bhat = _matrix(Bhat, "Bhat")
    shat = _matrix(1.0 if Shat is None else Shat, "Shat", shape=bhat.shape)
    if shat.shape != bhat.shape:
        raise ValueError(f"dimensions of Bhat {bhat.shape} and Shat {shat.shape} must match")
    for name, arr in (("Bhat", bhat), ("Shat", shat)):
        if np.isinf(arr).any():
            raise ValueError(f"{name} cannot contain Inf values")
    if (shat < -zero_check_tol).any():
        raise ValueError("Shat has negative entries; check whether Bhat and Shat were swapped")

    _reset_zero_shat(bhat, shat, zero_check_tol, zero_Bhat_Shat_reset, zero_Shat_reset)
    R = bhat.shape[1]
    vmat = np.eye(R) if V is None else _validate_v(V, R, v_ridge)

    missing = np.isnan(bhat)
    unit_se = np.allclose(shat, 1.0, equal_nan=True)
    if not unit_se and not np.array_equal(missing, np.isnan(shat)):
        raise ValueError("Bhat and Shat must be missing in the same entries")

    shat_alpha = np.ones_like(shat)
    if alpha != 0 and not unit_se:
        shat_alpha = shat**alpha
        bhat = bhat / shat_alpha
        shat = shat ** (1.0 - alpha)

    bhat[missing] = 0.0
    shat[missing] = 1e6
    shat_alpha[missing] = 1.0
    if alpha == 0:
        _warn_if_shat_varies(shat)

    return MashData(Bhat=bhat, Shat=shat, Shat_alpha=shat_alpha, V=vmat, alpha=float(alpha))


def contrast_matrix(R: int, ref: int | str, names: list[str] | tuple[str, ...] | None = None) -> np.ndarray:
    """``(R-1, R)`` contrasts of every condition against ``ref``.

    ``ref`` is a 0-based index, a name from ``names``, or ``"mean"`` for
    deviations from the average over conditions.
    """
    names = [str(r + 1) for r in range(R)] if names is None else list(names)
    if len(names) != R:
        raise ValueError("names must have length R")

    if ref == "mean":
        return (np.eye(R) - np.full((R, R), 1.0 / R))[:-1]

    if isinstance(ref, int):
        if not 0 <= ref < R:
            raise ValueError("ref must be between 0 and R-1")
        k = ref
    elif ref in names:
        k = names.index(ref)
    else:
        raise ValueError(f"The ref group {ref!r} is not in the given conditions")

    L = np.eye(R)
    L[:, k] -= 1.0
    return np.delete(L, k, axis=0)


def _contrast_shat(Shat_orig: np.ndarray, V: np.ndarray, L: np.ndarray) -> np.ndarray:
    # diag(L diag(s) V diag(s) L^T) for every row s of Shat_orig
    LS = L[None, :, :] * Shat_orig[:, None, :]
    var = np.einsum("jqr,rs,jqs->jq", LS, V, LS)
    return np.sqrt(np.maximum(var, 0.0))


def mash_set_data_contrast(data: MashData, L: np.ndarray) -> MashData:
    """Move ``data`` to contrast space ``L @ b``."""
    L = np.asarray(L, dtype=float)
    if L.ndim != 2 or L.shape[1] != data.n_conditions:
        raise ValueError(f"contrast matrix must have {data.n_conditions} columns")
    return MashData(
        Bhat=data.Bhat @ L.T,
        Shat=_contrast_shat(data.Shat, data.V, L),
        Shat_alpha=np.ones((data.n_effects, L.shape[0])),
        V=data.V,
        alpha=0.0,
        L=L,
        Shat_orig=data.Shat,
    )


def build_cov_stack(data: MashData) -> np.ndarray:
    """Per-effect residual covariances, shape ``(J, R, R)``."""
    if data.L is None:
        return data.Shat[:, :, None] * data.V[None, :, :] * data.Shat[:, None, :]
    return np.stack([data.get_cov(j) for j in range(data.n_effects)])


def mash_update_data(
    mashdata: MashData,
    ref: int | str | None = None,
    V: np.ndarray | None = None,
    v_ridge: float = 0.0,
) -> MashData:
    """Return a copy of ``mashdata`` with a new ``V`` and/or a contrast ``ref``.

    Examples
    --------
    >>> Vhat = estimate_null_correlation_simple(data)
    >>> data_v = mash_update_data(data, V=Vhat)
    """
    data = replace(
        mashdata,
        **{
            k: None if getattr(mashdata, k) is None else np.array(getattr(mashdata, k))
            for k in ("Bhat", "Shat", "Shat_alpha", "V", "L", "Shat_orig")
        },
    )

    if V is not None:
        R = data.n_conditions if data.L is None else data.L.shape[1]
        data.V = _validate_v(V, R, v_ridge)
        if data.L is not None:
            data.Shat = _contrast_shat(data.Shat_orig, data.V, data.L)

    if ref is not None:
        if data.L is not None:
            raise ValueError("The data is already configured for contrast analysis")
        data = mash_set_data_contrast(data, contrast_matrix(data.n_conditions, ref))

    return data


__all__ = [
    "MashData",
    "regularize_cov",
    "mash_set_data",
    "mash_update_data",
    "contrast_matrix",
    "mash_set_data_contrast",
    "build_cov_stack",
]
