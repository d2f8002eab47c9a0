from __future__ import annotations

import cProfile
import logging
import pstats
import time

import numpy as np

from mashcor.correlation import estimate_null_correlation
from mashcor.covariances import cov_canonical
from mashcor.data import mash_set_data
from mashcor.simulations import simple_sims


def run_profile(nsamp: int = 2000, ncond: int = 8, err_sd: float = 1.0, rho: float = 0.4) -> None:
    V = np.full((ncond, ncond), rho)
    np.fill_diagonal(V, 1.0)
    sim = simple_sims(nsamp=nsamp, ncond=ncond, err_sd=err_sd, seed=2026, V=V)
    data = mash_set_data(sim["Bhat"], sim["Shat"])
    U = cov_canonical(data)

    profiler = cProfile.Profile()
    t0 = time.perf_counter()
    profiler.enable()
    res = estimate_null_correlation(
        data,
        U,
        grid=np.array([0.5, 1.0, 2.0]),
        prior="nullbiased",
        optmethod="slsqp",
    )
    profiler.disable()
    t1 = time.perf_counter()

    print(f"Elapsed seconds: {t1 - t0:.3f}")
    print(f"Problem size: J={data.n_effects}, R={data.n_conditions}, K={len(U)}, P={1 + len(U) * 3}")
    print(f"Iterations: {res.niter} ({res.status.value}); mean off-diagonal V: {np.mean(res.V[~np.eye(ncond, dtype=bool)]):.3f}")
    print("Top 20 cumulative-time functions:")
    stats = pstats.Stats(profiler).sort_stats("cumulative")
    stats.print_stats(20)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_profile()
