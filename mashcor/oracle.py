"""Contract between the null-correlation estimator and the mixture-model fit.

The estimator never looks inside the fit. It needs a callable that takes
data carrying a residual correlation ``V``, the candidate covariances and a
prior scheme, and returns an object exposing the four accessors of
:class:`MixtureModel`. :func:`fit_mash_V` is the default, backed by
:func:`~mashcor.mash.mash`.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import numpy as np

from .data import MashData, mash_update_data
from .mash import MashResult, mash
from .priors import PriorScheme


@runtime_checkable
class MixtureModel(Protocol):
    def loglikelihood(self) -> float: ...

    def mixture_weights(self) -> np.ndarray: ...

    def posterior_means(self) -> np.ndarray: ...

    def posterior_covariances(self) -> np.ndarray: ...


class MixtureFitter(Protocol):
    def __call__(
        self,
        data: MashData,
        Ulist: dict[str, np.ndarray] | list[np.ndarray],
        prior: str | PriorScheme | np.ndarray,
        **kwargs,
    ) -> MixtureModel: ...


def mash_fitter(
    data: MashData,
    Ulist: dict[str, np.ndarray] | list[np.ndarray],
    prior: str | PriorScheme | np.ndarray = PriorScheme.NULLBIASED,
    **kwargs,
) -> MashResult:
    """Fit :func:`~mashcor.mash.mash` keeping posterior covariances."""
    kwargs["outputlevel"] = 3
    return mash(data, Ulist=Ulist, prior=prior, **kwargs)


def fit_mash_V(
    data: MashData,
    Ulist: dict[str, np.ndarray] | list[np.ndarray],
    V: np.ndarray,
    prior: str | PriorScheme | np.ndarray = PriorScheme.NULLBIASED,
    fitter: MixtureFitter | None = None,
    **kwargs,
) -> MixtureModel:
    """Refit the mixture model with residual correlation ``V``.

    ``data`` is copied, never modified.
    """
    data_V = mash_update_data(data, V=V)
    if fitter is None:
        fitter = mash_fitter
    return fitter(data_V, Ulist, prior, **kwargs)


__all__ = ["MixtureModel", "MixtureFitter", "mash_fitter", "fit_mash_V"]
