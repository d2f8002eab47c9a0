"""Null correlation estimation for multivariate adaptive shrinkage.

Data setup
----------
mash_set_data
    Create a MashData object from Bhat/Shat matrices.
mash_update_data
    Copy a MashData with a new correlation matrix V or contrast ref.
regularize_cov
    Add diagonal ridge to covariance/correlation matrices.
contrast_matrix
    Build a contrast matrix for comparing conditions to a reference.

Covariance matrices
-------------------
cov_canonical
    Canonical (hypothesis-based) covariance matrices.
expand_cov
    Scale covariance matrices over a grid, with an optional null component.

Model fitting
-------------
mash
    Fit the mash model for a fixed V.
optimize_pi
    Penalized maximum-likelihood mixture weights.
fit_mash_V
    Refit the mixture model with a replacement V.

Correlation estimation
----------------------
estimate_null_correlation_simple
    Estimate null correlation from putatively null effects.
estimate_null_correlation
    Iterative maximum-likelihood estimation of null correlation.
null_correlation_lower_bound
    Pairwise lower bound on the null correlation.

Result extraction
-----------------
get_pm, get_psd
    Posterior means / standard deviations.
get_loglik
    Log-likelihood of a fitted model.
get_estimated_pi
    Estimated mixture proportions.

Simulation
----------
simple_sims, null_sims
    Simulate test data with known effect structure.
"""

from importlib.metadata import PackageNotFoundError, version as _get_version

try:
    __version__ = _get_version("mashcor")
except PackageNotFoundError:
    __version__ = "0.0.0"

from .data import MashData, contrast_matrix, mash_set_data, mash_update_data, regularize_cov
from .errors import InsufficientNullDataError, MashcorError, UndefinedPenaltyError, UnsupportedDataShapeError
from .covariances import cov_canonical, expand_cov, normalize_Ulist
from .optimize import optimize_pi
from .priors import PriorScheme, penalty, set_prior
from .mash import FittedG, MashResult, mash
from .oracle import MixtureFitter, MixtureModel, fit_mash_V, mash_fitter
from .correlation import (
    E_V,
    EstimationStatus,
    NullCorrelationResult,
    TraceEntry,
    estimate_null_correlation,
    estimate_null_correlation_simple,
    null_correlation_lower_bound,
)
from .results import get_estimated_pi, get_loglik, get_pm, get_psd
from .simulations import null_sims, simple_sims

__all__ = [
    "MashData",
    "FittedG",
    "MashResult",
    "MashcorError",
    "InsufficientNullDataError",
    "UnsupportedDataShapeError",
    "UndefinedPenaltyError",
    "PriorScheme",
    "MixtureModel",
    "MixtureFitter",
    "EstimationStatus",
    "NullCorrelationResult",
    "TraceEntry",
    "regularize_cov",
    "mash_set_data",
    "mash_update_data",
    "contrast_matrix",
    "cov_canonical",
    "normalize_Ulist",
    "expand_cov",
    "optimize_pi",
    "set_prior",
    "penalty",
    "mash",
    "mash_fitter",
    "fit_mash_V",
    "E_V",
    "estimate_null_correlation_simple",
    "estimate_null_correlation",
    "null_correlation_lower_bound",
    "get_pm",
    "get_psd",
    "get_loglik",
    "get_estimated_pi",
    "simple_sims",
    "null_sims",
]
