from __future__ import annotations


class MashcorError(ValueError):
    """Base class for errors raised by the null-correlation estimators."""


class InsufficientNullDataError(MashcorError):
    """Fewer null-like effects than conditions.

    Raised by :func:`~mashcor.correlation.estimate_null_correlation_simple`.
    A full-rank ``(R, R)`` covariance cannot be estimated from fewer than
    ``R`` rows.
    """

    def __init__(self, n_null: int, n_conditions: int, z_thresh: float):
        self.n_null = int(n_null)
        self.n_conditions = int(n_conditions)
        self.z_thresh = float(z_thresh)
        super().__init__(
            f"Not enough null data to estimate null correlation: {self.n_null} effects "
            f"have max |z| < {self.z_thresh:g}, need at least {self.n_conditions}"
        )


class UnsupportedDataShapeError(MashcorError):
    """Data carries a contrast transformation the estimator cannot handle."""


class UndefinedPenaltyError(MashcorError):
    """A mixture weight is exactly zero where the prior penalizes it."""

    def __init__(self, indices):
        self.indices = [int(i) for i in indices]
        super().__init__(
            "Penalty is undefined (log of zero weight) for components "
            f"{', '.join(map(str, self.indices))} with prior != 1"
        )


__all__ = [
    "MashcorError",
    "InsufficientNullDataError",
    "UnsupportedDataShapeError",
    "UndefinedPenaltyError",
]
