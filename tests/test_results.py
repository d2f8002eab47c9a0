import numpy as np
import pytest

from mashcor.covariances import cov_canonical
from mashcor.data import mash_set_data
from mashcor.mash import FittedG, MashResult, mash
from mashcor.results import get_estimated_pi, get_loglik, get_pm, get_psd
from mashcor.simulations import simple_sims


def _result_with_pi(pi: np.ndarray, n_u: int, grid: np.ndarray, usepointmass: bool) -> MashResult:
    g = FittedG(pi=pi, Ulist=[np.eye(2)] * n_u, grid=grid, usepointmass=usepointmass)
    return MashResult(
        posterior_mean=None,
        posterior_sd=None,
        loglik=-12.5,
        vloglik=np.array([-12.5]),
        fitted_g=g,
        posterior_weights=np.ones((1, 1)),
        alpha=0.0,
    )


def test_result_helpers_work():
    sim = simple_sims(nsamp=15, ncond=3, err_sd=0.3, seed=3)
    data = mash_set_data(sim["Bhat"], sim["Shat"])
    U = cov_canonical(data)
    m = mash(data, Ulist=U, grid=np.array([0.5, 1.0]), outputlevel=2)

    pm = get_pm(m)
    psd = get_psd(m)
    pi_cov = get_estimated_pi(m, dimension="cov")
    pi_grid = get_estimated_pi(m, dimension="grid")
    pi_all = get_estimated_pi(m, dimension="all")

    assert pm.shape == sim["Bhat"].shape
    assert psd.shape == sim["Bhat"].shape
    assert pi_cov.shape == (1 + len(U),)
    assert pi_grid.shape == (1 + 2,)
    assert pi_all.shape == (1 + 2 * len(U),)
    for p in (pi_cov, pi_grid, pi_all):
        assert np.isclose(np.sum(p), 1.0)
    assert get_loglik(m) == pytest.approx(m.loglik)


def test_estimated_pi_collapses_grid_major_layout():
    # null, then (U1, U2, U3) at grid[0], then (U1, U2, U3) at grid[1]
    pi = np.array([0.1, 0.05, 0.1, 0.15, 0.2, 0.25, 0.15])
    m = _result_with_pi(pi, n_u=3, grid=np.array([0.5, 1.0]), usepointmass=True)

    assert np.allclose(get_estimated_pi(m, "cov"), [0.1, 0.25, 0.35, 0.3])
    assert np.allclose(get_estimated_pi(m, "grid"), [0.1, 0.3, 0.6])
    assert np.allclose(get_estimated_pi(m, "all"), pi)
    assert np.allclose(get_estimated_pi(m, "COV"), [0.1, 0.25, 0.35, 0.3])


def test_estimated_pi_without_pointmass_and_bad_dimension():
    pi = np.array([0.4, 0.6])
    m = _result_with_pi(pi, n_u=2, grid=np.array([1.0]), usepointmass=False)
    assert np.allclose(get_estimated_pi(m, "cov"), pi)
    assert np.allclose(get_estimated_pi(m, "grid"), [1.0])

    with pytest.raises(ValueError, match="dimension must be one of"):
        get_estimated_pi(m, "condition")


def test_missing_posterior_matrices_raise():
    m = _result_with_pi(np.array([1.0]), n_u=1, grid=np.array([1.0]), usepointmass=False)
    with pytest.raises(ValueError, match="posterior_mean is not available"):
        get_pm(m)
    with pytest.raises(ValueError, match="posterior_sd is not available"):
        get_psd(m)
    assert get_loglik(m) == -12.5
